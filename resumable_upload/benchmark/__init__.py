from .benchmark import Benchmarker, BenchmarkResult

__all__ = ['Benchmarker', 'BenchmarkResult']
