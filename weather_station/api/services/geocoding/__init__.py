from .zippopotam_client import ZippopotamGeocodingClient

__all__ = ["ZippopotamGeocodingClient"]
