import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from dotenv import load_dotenv

from .config import DEFAULT_CONFIG_PATH, EstimatorConfig
from .errors import EditError, EstimateNotFoundError, EstimatorError
from .generator import OpenAIGenerator
from .images import ImageSource
from .models import BOOTH_SIZES, LOCATION_TYPES, LOGISTICS_KEYS, STATUSES, TIER_KEYS, BoothRequest
from .pipeline import EstimatePipeline
from .pricing import AddLineItem, DeleteLineItem, UpdateLineItem, UpdateLogistics, apply_edit
from .refinement import RefinementWorkflow, transition_status
from .reporting import estimates_frame, make_summary_text
from .store import EstimateStore, JsonFileBackend

logger = logging.getLogger(__name__)


def _load_config(path: Optional[str]) -> EstimatorConfig:
    if path:
        return EstimatorConfig.load(Path(path))
    if DEFAULT_CONFIG_PATH.exists():
        return EstimatorConfig.load(DEFAULT_CONFIG_PATH)
    return EstimatorConfig.from_dict({})


def _store(config: EstimatorConfig) -> EstimateStore:
    return EstimateStore(JsonFileBackend(config.store.directory), key=config.store.key)


def _require(store: EstimateStore, document_id: str):
    document = store.get(document_id)
    if document is None:
        raise EstimateNotFoundError(document_id)
    return document


def _parse_answers(values: Sequence[str]) -> Dict[str, str]:
    answers: Dict[str, str] = {}
    for value in values:
        if "=" not in value:
            raise EditError(f"Answers must look like QID=TEXT, got {value!r}")
        key, text = value.split("=", 1)
        answers[key.strip()] = text.strip()
    return answers


def _cmd_new(args: argparse.Namespace, config: EstimatorConfig) -> int:
    request = BoothRequest.create(args.location, args.booth_size, args.sqft)
    sources: List[ImageSource] = []
    for path in args.images:
        try:
            sources.append(ImageSource.from_path(Path(path)))
        except EstimatorError as exc:
            logger.warning("%s", exc)
    pipeline = EstimatePipeline(OpenAIGenerator(config.generator), _store(config), config)
    result = pipeline.create_estimate(request, sources)
    for source, error in result.image_failures:
        logger.warning("Skipped %s: %s", source.display_name, error)
    logger.info(make_summary_text(result.document))
    for question in result.document.clarifying_questions:
        options = f" [{', '.join(question.options)}]" if question.options else ""
        logger.info("%s: %s%s", question.id, question.question, options)
    return 0


def _cmd_refine(args: argparse.Namespace, config: EstimatorConfig) -> int:
    workflow = RefinementWorkflow(OpenAIGenerator(config.generator), _store(config), config)
    document = workflow.refine_by_id(args.id, _parse_answers(args.answer))
    logger.info(make_summary_text(document))
    return 0


def _cmd_list(args: argparse.Namespace, config: EstimatorConfig) -> int:
    frame = estimates_frame(_store(config).list())
    if frame.empty:
        logger.info("No estimates stored.")
    else:
        logger.info(frame.to_string(index=False))
    return 0


def _cmd_show(args: argparse.Namespace, config: EstimatorConfig) -> int:
    document = _require(_store(config), args.id)
    if args.json:
        print(json.dumps(document.to_dict(), indent=2))
        return 0
    if args.tier:
        document = replace(document, selected_tier=args.tier)
    logger.info(make_summary_text(document))
    return 0


def _cmd_delete(args: argparse.Namespace, config: EstimatorConfig) -> int:
    if not _store(config).delete(args.id):
        raise EstimateNotFoundError(args.id)
    return 0


def _cmd_status(args: argparse.Namespace, config: EstimatorConfig) -> int:
    store = _store(config)
    store.put(transition_status(_require(store, args.id), args.status))
    logger.info("Estimate %s is now %s", args.id, args.status)
    return 0


def _cmd_edit(args: argparse.Namespace, config: EstimatorConfig) -> int:
    store = _store(config)
    document = _require(store, args.id)
    if args.command == "add-item":
        edit = AddLineItem(args.description, args.quantity, args.unit_cost, args.subtotal)
    elif args.command == "update-item":
        edit = UpdateLineItem(args.index, args.description, args.quantity, args.unit_cost, args.subtotal)
    elif args.command == "delete-item":
        edit = DeleteLineItem(args.index)
    else:
        edit = UpdateLogistics(args.category, args.value)
    document = store.put(apply_edit(document, args.tier, edit))
    tier = document.tiers[args.tier]
    logger.info(
        "%s: fabrication $%s, logistics $%s, total $%s",
        tier.label,
        f"{tier.fabrication_subtotal:,.0f}",
        f"{tier.logistics_subtotal:,.0f}",
        f"{tier.grand_total:,.0f}",
    )
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Estimate trade-show exhibit fabrication costs")
    parser.add_argument("--config", help="Path to a JSON or YAML configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Generate a new estimate")
    new.add_argument("--location", choices=LOCATION_TYPES, default="indoor")
    new.add_argument("--booth-size", choices=list(BOOTH_SIZES), default="20x20")
    new.add_argument("--sqft", type=float, help="Square footage for custom booth sizes")
    new.add_argument("images", nargs="*", help="Render images, in angle order")

    refine = sub.add_parser("refine", help="Re-estimate with clarifying answers")
    refine.add_argument("id")
    refine.add_argument("--answer", action="append", default=[], metavar="QID=TEXT")

    sub.add_parser("list", help="List stored estimates")

    show = sub.add_parser("show", help="Show one estimate")
    show.add_argument("id")
    show.add_argument("--tier", choices=TIER_KEYS)
    show.add_argument("--json", action="store_true", help="Print the stored document")

    delete = sub.add_parser("delete", help="Delete an estimate")
    delete.add_argument("id")

    status = sub.add_parser("status", help="Change an estimate's status")
    status.add_argument("id")
    status.add_argument("status", choices=[s for s in STATUSES if s != "revised"])

    for name in ("add-item", "update-item"):
        item = sub.add_parser(name, help=f"{name.replace('-', ' ').capitalize()} in a tier")
        item.add_argument("id")
        item.add_argument("tier", choices=TIER_KEYS)
        if name == "update-item":
            item.add_argument("index", type=int)
        item.add_argument("--description", default="New Line Item")
        item.add_argument("--quantity", default="1")
        item.add_argument("--unit-cost", default="0")
        item.add_argument("--subtotal", default=None)

    delete_item = sub.add_parser("delete-item", help="Remove a line item from a tier")
    delete_item.add_argument("id")
    delete_item.add_argument("tier", choices=TIER_KEYS)
    delete_item.add_argument("index", type=int)

    logistics = sub.add_parser("set-logistics", help="Set a logistics figure")
    logistics.add_argument("id")
    logistics.add_argument("tier", choices=TIER_KEYS)
    logistics.add_argument("category", choices=LOGISTICS_KEYS)
    logistics.add_argument("value")

    return parser.parse_args(argv)


COMMANDS = {
    "new": _cmd_new,
    "refine": _cmd_refine,
    "list": _cmd_list,
    "show": _cmd_show,
    "delete": _cmd_delete,
    "status": _cmd_status,
    "add-item": _cmd_edit,
    "update-item": _cmd_edit,
    "delete-item": _cmd_edit,
    "set-logistics": _cmd_edit,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(Path(os.getcwd()) / ".env")
    args = parse_args(argv)
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    try:
        config = _load_config(args.config)
        return COMMANDS[args.command](args, config)
    except (EstimatorError, ValueError, FileNotFoundError) as exc:
        logger.error("Error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
