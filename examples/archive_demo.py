"""
Document archive demonstration example.
"""

import asyncio
import tempfile
from pathlib import Path

from docarchive import ArchiveConfig, DocumentArchive, SearchFilters


SAMPLE_DOCUMENTS = {
    "quantum_computing.md": (
        "# Quantum Computing\n\n"
        "Quantum computers use qubits, which can hold a superposition of states.\n\n"
        "Entanglement lets qubits share state, and error correction remains the main challenge."
    ),
    "renewable-energy.txt": (
        "Solar panels convert sunlight into electricity with photovoltaic cells.\n"
        "Wind turbines turn kinetic energy into power. In 2023 renewables supplied 30% of global electricity."
    ),
    "ai_ethics.txt": (
        "Ethical AI development weighs fairness, transparency and accountability.\n"
        "Bias in training data can lead to unfair outcomes."
    ),
}


async def main():
    print("=== Document Archive Demo ===\n")

    workdir = Path(tempfile.mkdtemp(prefix="docarchive-"))
    docs = workdir / "docs"
    docs.mkdir()
    for name, text in SAMPLE_DOCUMENTS.items():
        (docs / name).write_text(text, encoding="utf-8")

    # The hash embedding runs offline; use embedding_provider="local" for real semantics.
    config = ArchiveConfig(
        document_directories=[str(docs)],
        embedding_provider="hash",
        lancedb_path=str(workdir / "lancedb"),
        write_stability_ms=200,
    )

    async with DocumentArchive(config) as archive:
        # 1. Readiness
        print("1. Services ready...")
        for name, status in archive.status.services.items():
            print(f"   {name}: {'ready' if status.ready else status.error}")
        print()

        # 2. Ingest the existing files found by the initial scan
        print("2. Ingesting existing files...")
        await archive.watcher.flush()
        for document in await archive.get_documents_metadata():
            print(f"   {document.document_id}  {document.title} ({document.file_type})")
        print()

        # 3. Search by intent
        print("3. Searching...")
        for query, intent in [
            ("qubits superposition", "conceptual_explanation"),
            ("renewables share of global electricity", "statistical_data"),
        ]:
            config = archive.get_retrieval_config(intent)
            results = await archive.search(query, intent=intent)
            print(f"   {query!r} [{intent}: {config.index_type}, k={config.k}]")
            for result in results[:2]:
                print(f"     {result.score:.3f}  {result.chunk.title}: {result.chunk.content[:60]!r}")
        print()

        # 4. Filtered search
        print("4. Searching Markdown files only...")
        results = await archive.search("energy", filters=SearchFilters(file_types=["md"]))
        print(f"   {len(results)} results, file types: {sorted({r.chunk.file_type for r in results})}")
        print()

        # 5. A new file is picked up by the watcher
        print("5. Adding a file while watching...")
        (docs / "climate_report.txt").write_text("Global temperatures rose by 1.1 degrees since pre-industrial times.")
        await asyncio.sleep(3)
        await archive.watcher.flush()
        titles = [d.title for d in await archive.get_documents_metadata()]
        print(f"   Documents: {titles}")


if __name__ == "__main__":
    asyncio.run(main())
