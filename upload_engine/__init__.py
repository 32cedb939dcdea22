"""Resumable chunked upload engine: FastAPI server and async uploader client"""

__version__ = "1.0.0"
