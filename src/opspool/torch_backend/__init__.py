from .kernels import TorchBackend

__all__ = ["TorchBackend"]
