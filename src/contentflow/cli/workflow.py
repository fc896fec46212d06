"""CLI for running workflow operations against a JSON store snapshot.

The snapshot is loaded, one operation runs, and the snapshot is written back
when the operation succeeds. Results are printed as JSON on stdout; workflow
rejections are printed as {"kind", "reason"} JSON on stderr with exit code 1.

Usage:
    python -m contentflow.cli.workflow [--store PATH] [--as-tutor USER_ID] <command> ...

Commands:
    create-lesson      Create a draft lesson at the end of its language partition
    list-lessons       List lessons ordered by language and index
    delete-lesson      Soft-delete lessons with cascade and compaction
    reorder            Reorder a language partition
    compact            Close order_index gaps in a language partition
    verify             Check that a partition's indexes are contiguous
    finish             Move a draft entity to finished
    publish            Publish an entity
    generate-phrases   Generate AI phrases for a lesson
    generate-proverbs  Generate AI proverbs for a lesson
    generate-lessons   Bulk-generate AI lessons
    list-submissions   List voice-audio submissions
    review-audio       Accept or reject a pending voice-audio submission

Examples:
    # Create a lesson and reorder the partition
    python -m contentflow.cli.workflow create-lesson \\
        --title "Greetings" --language yoruba --level beginner --created-by admin-1
    python -m contentflow.cli.workflow reorder --language yoruba <id-2> <id-1>

    # Generate five intermediate Igbo lessons
    python -m contentflow.cli.workflow generate-lessons \\
        --language igbo --level intermediate --count 5 --created-by admin-1
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from contentflow import constants
from contentflow.errors import WorkflowError
from contentflow.services import Services, build_services
from contentflow.storage.json_store import JsonSnapshotStore
from contentflow.utils.ai_content_client import AiContentClient
from contentflow.utils.language_utils import get_language
from contentflow.utils.llm_client import LLMClient
from contentflow.utils.logging_config import configure_logging
from contentflow.validators.schema import Actor, Language, Level, Role, Status, SubmissionStatus
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)

ENTITY_TYPES = ["lesson", "phrase", "proverb", "question"]
READ_ONLY_COMMANDS = {"list-lessons", "verify", "list-submissions"}


def _language(value: str) -> Language:
    try:
        return get_language(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run content workflow operations against a JSON store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--store", default=constants.STORE_PATH, help="Path to the JSON store snapshot")
    parser.add_argument("--as-tutor", metavar="USER_ID", help="Run narrowed to this tutor's language")
    parser.add_argument(
        "--serialize-partitions",
        action="store_true",
        default=constants.SERIALIZE_PARTITIONS,
        help="Hold a per-language lock around lesson ordering operations",
    )
    parser.add_argument("--log-level", default=constants.LOG_LEVEL, help="Logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create-lesson", help="Create a draft lesson")
    create.add_argument("--title", required=True)
    create.add_argument("--language", type=_language, help="yoruba, igbo, hausa (or yo/ig/ha)")
    create.add_argument("--level", required=True, choices=[level.value for level in Level])
    create.add_argument("--description")
    create.add_argument("--topic", action="append", default=[], help="Repeat for several topics")
    create.add_argument("--created-by", required=True)

    list_lessons = subparsers.add_parser("list-lessons", help="List lessons")
    list_lessons.add_argument("--language", type=_language)
    list_lessons.add_argument("--status", choices=[status.value for status in Status])

    delete = subparsers.add_parser("delete-lesson", help="Soft-delete lessons with cascade")
    delete.add_argument("lesson_ids", nargs="+")

    reorder = subparsers.add_parser("reorder", help="Reorder a language partition")
    reorder.add_argument("--language", type=_language, required=True)
    reorder.add_argument("lesson_ids", nargs="+", help="Every active lesson id of the language, in order")

    compact = subparsers.add_parser("compact", help="Close order_index gaps")
    compact.add_argument("--language", type=_language, required=True)

    verify = subparsers.add_parser("verify", help="Check partition contiguity")
    verify.add_argument("--language", type=_language)

    finish = subparsers.add_parser("finish", help="Move a draft entity to finished")
    finish.add_argument("entity", choices=ENTITY_TYPES)
    finish.add_argument("entity_id")

    publish = subparsers.add_parser("publish", help="Publish an entity")
    publish.add_argument("entity", choices=ENTITY_TYPES)
    publish.add_argument("entity_id")
    publish.add_argument(
        "--reviewed", action="store_true", help="Mark AI-generated phrases/proverbs as reviewed by an admin"
    )

    phrases = subparsers.add_parser("generate-phrases", help="Generate AI phrases for a lesson")
    phrases.add_argument("lesson_id")
    phrases.add_argument("--seed-word", action="append", default=[])
    phrases.add_argument("--instructions")

    proverbs = subparsers.add_parser("generate-proverbs", help="Generate AI proverbs for a lesson")
    proverbs.add_argument("lesson_id")
    proverbs.add_argument("--count", type=int)
    proverbs.add_argument("--instructions")

    lessons = subparsers.add_parser("generate-lessons", help="Bulk-generate AI lessons")
    lessons.add_argument("--language", type=_language, required=True)
    lessons.add_argument("--level", required=True, choices=[level.value for level in Level])
    lessons.add_argument("--count", type=int, required=True)
    lessons.add_argument("--topic", action="append", default=[])
    lessons.add_argument("--title")
    lessons.add_argument("--created-by", required=True)
    lessons.add_argument("--no-proverbs", action="store_true", help="Do not merge suggested proverbs")

    submissions = subparsers.add_parser("list-submissions", help="List voice-audio submissions")
    submissions.add_argument("--status", choices=[status.value for status in SubmissionStatus])
    submissions.add_argument("--language", type=_language)
    submissions.add_argument("--phrase-id")
    submissions.add_argument("--artist", help="Voice artist user id")

    review = subparsers.add_parser("review-audio", help="Accept or reject a voice-audio submission")
    review.add_argument("submission_id")
    review.add_argument("decision", choices=["accept", "reject"])
    review.add_argument("--reviewer", required=True)
    review.add_argument("--reason", default="", help="Required when rejecting")

    return parser


def _to_jsonable(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, list):
        return [_to_jsonable(item) for item in result]
    if isinstance(result, dict):
        return {key: _to_jsonable(value) for key, value in result.items()}
    return result


def _build_ai_client() -> AiContentClient:
    llm_client = LLMClient(
        model=constants.LLM_MODEL,
        max_retries=constants.LLM_MAX_RETRIES,
        enable_langfuse=constants.ENABLE_LANGFUSE,
    )
    return AiContentClient(llm_client)


async def run_command(args: argparse.Namespace, services: Services) -> Any:
    """Dispatch one parsed command; returns a JSON-serializable result."""
    if args.as_tutor:
        scope = await services.scope_guard.resolve(Actor(id=args.as_tutor, role=Role.TUTOR))
    else:
        scope = Scope.unrestricted()

    command = args.command

    if command == "create-lesson":
        return await services.lessons.create(
            {
                "title": args.title,
                "language": args.language,
                "level": args.level,
                "description": args.description,
                "topics": args.topic,
                "created_by": args.created_by,
            },
            scope,
        )

    if command == "list-lessons":
        return await services.lessons.list(scope, language=args.language, status=args.status)

    if command == "delete-lesson":
        return await services.lessons.bulk_delete(args.lesson_ids, scope)

    if command == "reorder":
        return await services.lessons.reorder(args.language, args.lesson_ids, scope)

    if command == "compact":
        return {"language": args.language.value, "reindexed": await services.lessons.compact(args.language, scope)}

    if command == "verify":
        languages = [args.language] if args.language else list(Language)
        return {
            language.value: await services.ordering.verify(language)
            for language in languages
            if scope.allows(language)
        }

    if command in ("finish", "publish"):
        service = getattr(services, f"{args.entity}s")
        if command == "finish":
            return await service.finish(args.entity_id, scope)
        if args.entity in ("phrase", "proverb"):
            return await service.publish(args.entity_id, scope, reviewed_by_admin=args.reviewed)
        return await service.publish(args.entity_id, scope)

    if command == "generate-phrases":
        return await services.ai_phrases.generate_for_lesson(
            args.lesson_id, scope, seed_words=args.seed_word, extra_instructions=args.instructions
        )

    if command == "generate-proverbs":
        return await services.ai_proverbs.generate_for_lesson(
            args.lesson_id, scope, count=args.count, extra_instructions=args.instructions
        )

    if command == "generate-lessons":
        return await services.ai_lessons.generate_lessons_bulk(
            language=args.language,
            level=Level(args.level),
            count=args.count,
            created_by=args.created_by,
            scope=scope,
            topics=args.topic,
            title=args.title,
            attach_proverbs=not args.no_proverbs,
        )

    if command == "list-submissions":
        return await services.voice_audio.list(
            scope,
            status=SubmissionStatus(args.status) if args.status else None,
            voice_artist_user_id=args.artist,
            phrase_id=args.phrase_id,
            language=args.language,
        )

    if command == "review-audio":
        if args.decision == "accept":
            return await services.voice_audio.accept(args.submission_id, args.reviewer, scope)
        return await services.voice_audio.reject(args.submission_id, args.reviewer, args.reason, scope)

    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=args.log_level.upper(),
        log_file=constants.LOG_FILE,
        json_format=constants.LOG_FORMAT == "json",
        console_output=False,
    )

    snapshot = JsonSnapshotStore(args.store)
    try:
        store = snapshot.load()
    except ValueError as e:
        logger.error(f"Cannot load store: {e}")
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 1

    ai_client = _build_ai_client() if args.command.startswith("generate-") else None
    services = build_services(store, ai_client=ai_client, serialize_partitions=args.serialize_partitions)

    try:
        result = asyncio.run(run_command(args, services))
    except WorkflowError as e:
        logger.error(f"{args.command} rejected: {e.kind.value}/{e.reason.value}: {e}")
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 1

    if args.command not in READ_ONLY_COMMANDS:
        snapshot.save(store)

    print(json.dumps(_to_jsonable(result), indent=2, ensure_ascii=False, default=str))
    if ai_client is not None:
        logger.info(f"Token usage: {ai_client.llm_client.get_usage_summary()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
