"""
Data sources behind the point lookups.

A provider answers containment, proximity and identify queries for one dataset.
ArcGIS REST services are reached over httpx; GeoJSON files are served from an
in-memory STRtree index.
"""
