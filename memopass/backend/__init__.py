"""Back ends that consume memopass IR."""

from memopass.backend.llvm_emitter import LLVMEmitter, emit_llvm, lower_type

__all__ = ['LLVMEmitter', 'emit_llvm', 'lower_type']
