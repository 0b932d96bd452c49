from .kernels import JaxBackend

__all__ = ["JaxBackend"]
