"""Kids3D Teacher: spoken-English practice companion for children."""

__version__ = "1.0.0"
