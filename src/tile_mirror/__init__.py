"""Mirror a tiled raster map service into a content-addressed store"""

__version__ = "0.1.0"
