"""ModelForge: text/image to 3D model generation backend."""

__version__ = "1.0.0"
