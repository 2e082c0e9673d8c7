"""Chunk storage pipeline package: fingerprints, embeddings, vector sink."""

from siteingest.rag.dedup import fingerprint
from siteingest.rag.embedder import embed_text
from siteingest.rag.ingestor import VectorStoreSink

__all__ = ["fingerprint", "embed_text", "VectorStoreSink"]
