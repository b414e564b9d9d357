"""Instruction-trace records, branch decoding, clocked components and CVP-1 trace conversion."""

__version__ = "0.1.0"