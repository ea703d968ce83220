"""Build FAISS and BM25 indexes from the JSONL document corpus."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from adaptive_rag.config.settings import Settings
from adaptive_rag.index.bm25_index import BM25Index
from adaptive_rag.index.faiss_store import FAISSStore
from adaptive_rag.index.local_index import load_documents
from adaptive_rag.providers.factory import create_provider


async def embed_all(provider, texts: list[str]) -> list[list[float]]:
    # OpenAI batches; other providers embed one text at a time
    if hasattr(provider, "embed_texts"):
        return await provider.embed_texts(texts)
    return [await provider.embed(text) for text in texts]


async def main(documents_path: str | None) -> None:
    settings = Settings()
    path = documents_path or settings.documents_path

    documents = load_documents(path)
    print(f"Found {len(documents)} documents in {path}")

    if not documents:
        print("No documents to index.")
        return

    doc_ids = list(documents)
    texts = [documents[doc_id]["content"] for doc_id in doc_ids]

    print("Building BM25 index...")
    bm25_index = BM25Index()
    bm25_index.build(list(zip(doc_ids, texts)))
    bm25_index.save(settings.bm25_index_path)
    print(f"BM25 index built: {bm25_index.size} entries")

    print("Building FAISS index...")
    provider = create_provider(settings)
    store = FAISSStore(dimensions=settings.embedding_dimensions)
    embeddings = await embed_all(provider, texts)
    store.add(doc_ids, np.array(embeddings, dtype=np.float32))
    store.save(settings.faiss_index_path)
    print(f"FAISS index built: {store.size} vectors")

    print("Done!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Build retrieval indexes")
    parser.add_argument("--documents", help="JSONL corpus (defaults to settings.documents_path)")
    args = parser.parse_args()
    asyncio.run(main(args.documents))
