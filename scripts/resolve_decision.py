"""
Resolve one group decision from a JSON payload.

Reads {decisionId, options, constraints, fairnessSnapshot} and writes the
DecisionResult as JSON. Nothing is persisted; fairness updates are printed
for the caller to commit.

Usage:
    # From a file, result to stdout
    python scripts/resolve_decision.py decision.json

    # From stdin, with a plain-language summary block
    cat decision.json | python scripts/resolve_decision.py - --summary

    # Write to a file, debug logging
    python scripts/resolve_decision.py decision.json -o result.json -v

Exit codes:
    0  resolved
    2  invalid input (every bad field is listed on stdout)
    3  no constraints or no options
    4  every option vetoed
"""

import argparse
import json
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_INPUT = 2
EXIT_INSUFFICIENT_DATA = 3
EXIT_NO_VIABLE_OPTION = 4


def _load_payload(source: str) -> dict:
    if source == "-":
        return json.load(sys.stdin)
    with Path(source).open(encoding="utf-8") as fh:
        return json.load(fh)


def _emit(document: dict, output: str | None) -> None:
    text = json.dumps(document, indent=2, sort_keys=False)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        logger.info("Wrote result to %s", output)
    else:
        print(text)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Resolve a group decision from a JSON payload")
    parser.add_argument("payload", help="Path to the decision JSON, or - for stdin")
    parser.add_argument("-o", "--output", default=None, help="Write result JSON here instead of stdout")
    parser.add_argument("--summary", action="store_true", help="Include a plain-language summary block")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    from services.decision import (
        DecisionEngine,
        InsufficientData,
        InvalidInput,
        NoViableOption,
    )
    from services.decision.explanation import ExplanationGenerator

    try:
        payload = _load_payload(args.payload)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read payload %s: %s", args.payload, exc)
        return EXIT_INVALID_INPUT

    engine = DecisionEngine()
    try:
        result = engine.resolve_payload(payload)
    except InvalidInput as exc:
        logger.error("%s", exc)
        _emit(exc.to_dict(), args.output)
        return EXIT_INVALID_INPUT
    except InsufficientData as exc:
        logger.error("%s", exc)
        _emit({"error": "InsufficientData", "message": str(exc)}, args.output)
        return EXIT_INSUFFICIENT_DATA
    except NoViableOption as exc:
        logger.error("%s", exc)
        _emit(
            {"error": "NoViableOption", "message": exc.message, "vetoes": exc.vetoes()},
            args.output,
        )
        return EXIT_NO_VIABLE_OPTION

    document = result.to_dict()
    if args.summary:
        explainer = ExplanationGenerator()
        document["summary"] = explainer.summarize(result).to_dict()
        document["compromiseNotes"] = [
            n.to_dict() for n in explainer.explain_compromises(result)
        ]
    _emit(document, args.output)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
