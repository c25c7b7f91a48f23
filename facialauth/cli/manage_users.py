"""CLI tool for managing enrolled users."""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from facialauth.core.config import settings
from facialauth.core.container import ServiceContainer
from facialauth.core.exceptions import (
    FacialAuthError,
    ProfileAlreadyExistsError,
    ServiceNotInitializedError,
    UserNotRegisteredError,
)
from facialauth.core.logging import get_logger, setup_logging
from facialauth.domain.value_objects.recognition import TrainingMode

logger = get_logger(__name__)


def read_images(paths: Sequence[str]) -> List[bytes]:
    images = []
    for path in paths:
        image_file = Path(path)
        if not image_file.is_file():
            raise FileNotFoundError(f"Image file not found: {path}")
        images.append(image_file.read_bytes())
    return images


async def list_users(container: ServiceContainer, args: argparse.Namespace) -> int:
    users = await container.embedding_store.list_users()
    for user_id in users:
        print(user_id)
    logger.info("Listed users", total=len(users))
    return 0


async def show_user(container: ServiceContainer, args: argparse.Namespace) -> int:
    profile = await container.embedding_store.get_profile(args.user_id)
    if profile is None:
        print(f"User not registered: {args.user_id}", file=sys.stderr)
        return 1
    print(profile.model_dump_json(indent=2, exclude={"encrypted_embeddings"}))
    return 0


async def verify_user(container: ServiceContainer, args: argparse.Namespace) -> int:
    store = container.embedding_store
    if not await store.exists(args.user_id):
        print(f"User not registered: {args.user_id}", file=sys.stderr)
        return 1
    intact = await store.verify_integrity(args.user_id)
    print("ok" if intact else "corrupted")
    return 0 if intact else 1


async def delete_user(container: ServiceContainer, args: argparse.Namespace) -> int:
    try:
        await container.embedding_store.delete(args.user_id)
    except UserNotRegisteredError as e:
        print(str(e), file=sys.stderr)
        return 1
    print(f"Deleted {args.user_id}")
    return 0


async def enroll_user(container: ServiceContainer, args: argparse.Namespace) -> int:
    store = container.embedding_store
    if not args.re_enroll and await store.exists(args.user_id):
        raise ProfileAlreadyExistsError(f"User already registered: {args.user_id}")

    await container.load_model()
    if container.enrollment_service is None:
        raise ServiceNotInitializedError("Enrollment service not initialized")

    images = read_images(args.images)
    result = await container.enrollment_service.train(args.user_id, images, TrainingMode(args.mode))
    profile = await store.save(args.user_id, args.display_name or args.user_id, result.embedding)

    print(
        f"Enrolled {profile.user_id} from {result.metrics.samples_used} samples "
        f"(enrollments: {profile.samples_count})"
    )
    return 0


async def authenticate_user(container: ServiceContainer, args: argparse.Namespace) -> int:
    store = container.embedding_store
    if not await store.exists(args.user_id):
        raise UserNotRegisteredError(f"User not registered: {args.user_id}")

    await container.load_model()
    if container.extractor is None:
        raise ServiceNotInitializedError("Embedding extractor not initialized")

    image = read_images([args.image])[0]
    embedding = await container.extractor.extract(image)
    stored = await store.load(args.user_id)
    comparison = container.comparator.compare(embedding, stored)
    matched = container.comparator.is_match(comparison)

    print(
        f"{'match' if matched else 'no match'}: similarity={comparison.cosine_similarity:.4f} "
        f"threshold={container.comparator.similarity_threshold:.2f}"
    )
    return 0 if matched else 1


COMMANDS = {
    "list": list_users,
    "show": show_user,
    "verify": verify_user,
    "delete": delete_user,
    "enroll": enroll_user,
    "authenticate": authenticate_user,
}

MODEL_COMMANDS = {"enroll", "authenticate"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="facialauth", description="Manage enrolled facial authentication users")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List registered users")

    for name, help_text in (
        ("show", "Show a user's profile metadata"),
        ("verify", "Verify a user's stored embedding"),
        ("delete", "Delete a user's profile"),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument("user_id", help="User identifier")

    enroll = subparsers.add_parser("enroll", help="Enroll a user from still images")
    enroll.add_argument("user_id", help="User identifier")
    enroll.add_argument("images", nargs="+", help="Paths to enrollment images")
    enroll.add_argument("--name", dest="display_name", help="Display name (defaults to the user ID)")
    enroll.add_argument(
        "--mode",
        choices=[mode.value for mode in TrainingMode],
        default=settings.TRAINING_MODE,
        help="Progress pacing mode"
    )
    enroll.add_argument("--re-enroll", action="store_true", help="Update an existing profile")

    authenticate = subparsers.add_parser("authenticate", help="Verify an image against a user")
    authenticate.add_argument("user_id", help="User identifier")
    authenticate.add_argument("image", help="Path to the image to verify")

    return parser


async def run(args: argparse.Namespace, container: Optional[ServiceContainer] = None) -> int:
    if container is None:
        config = settings
        if args.command not in MODEL_COMMANDS:
            config = settings.model_copy(update={"RECOGNITION_BACKEND": "none"})
        container = ServiceContainer(config)
    await container.initialize()
    try:
        return await COMMANDS[args.command](container, args)
    except (FacialAuthError, FileNotFoundError) as e:
        logger.error("Command failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        await container.cleanup()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    setup_logging()
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
