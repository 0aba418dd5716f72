"""Document numbering package."""

from docengine.numbering.allocator import SequenceAllocator

__all__ = ["SequenceAllocator"]
