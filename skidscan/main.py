import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

from skidscan.ai.exceptions import AiClientError
from skidscan.ai.factory import AiClientFactory
from skidscan.config.settings import Settings
from skidscan.intake.exceptions import IntakeError
from skidscan.intake.intake import ItemIntake
from skidscan.logging.logger import Log
from skidscan.pdf.factory import PdfRasterizerFactory
from skidscan.scan.exceptions import ScanConfigurationError
from skidscan.scan.orchestrator import ScanOrchestrator
from skidscan.sources.registry import SourceRegistry
from skidscan.store.previews import PreviewHandles
from skidscan.store.store import ScanStore


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="skidscan",
        description="Extract and solve problems from document images and PDFs.",
    )
    parser.add_argument("files", nargs="*", type=Path, help="images or PDFs to scan")
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="print the model catalog of every configured source and exit",
    )
    return parser.parse_args(argv)


async def list_models(registry: SourceRegistry, factory: AiClientFactory) -> dict[str, list[str]]:
    """Collect each eligible source's model catalog; failures are logged and skipped."""
    catalog: dict[str, list[str]] = {}
    for source in registry.eligible():
        client = factory.create(source)
        try:
            models = await client.get_available_models()
        except AiClientError as exc:
            Log.warning(f"Could not list models for '{source.display_name}': {exc}")
            continue
        finally:
            await client.aclose()
        catalog[source.id] = [model.name for model in models]
    return catalog


def main(argv: list[str] | None = None) -> int:
    """Entry point: settings -> logging -> queue files -> scan -> print solutions."""
    args = _parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)

    registry = SourceRegistry.from_settings(settings)
    factory = AiClientFactory(settings)
    if args.list_models:
        print(json.dumps(asyncio.run(list_models(registry, factory)), indent=2))
        return 0

    previews = PreviewHandles()
    store = ScanStore(previews)
    rasterizer = PdfRasterizerFactory.create(settings) if settings.pdf_rasterize else None
    intake = ItemIntake(
        store,
        previews,
        rasterizer=rasterizer,
        rasterize_dpi=settings.pdf_rasterize_dpi,
    )
    try:
        intake.append_files(args.files)
        orchestrator = ScanOrchestrator.from_settings(settings, store, registry, factory.create)
        asyncio.run(orchestrator.start_scan())
        output = [
            {"file": item.name, "item_status": item.status.value, **asdict(solution)}
            for item, solution in store.ordered_solutions()
        ]
        print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
    except (ScanConfigurationError, IntakeError) as exc:
        print(f"skidscan: {exc}", file=sys.stderr)
        return 2
    finally:
        intake.clear_all()
        previews.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
