"""Intel Archive - deduplicated archive of geolocated intelligence events."""

__version__ = "1.0.0"
