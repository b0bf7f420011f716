"""Front ends that produce memopass IR."""

from memopass.frontend.python_lowering import PythonLowering, lower_file, lower_source

__all__ = ['PythonLowering', 'lower_file', 'lower_source']
