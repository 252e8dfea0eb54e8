"""Command line access to package screenshots."""
import sys
import logging
import argparse

from .config import build_resolver, load_settings
from .defaults import resolve_default_category
from .screenshot import BlobType


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pkgshot", description="Resolve package screenshots and thumbnails.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    path_parser = subparsers.add_parser("path", help="Print the image path for a package")
    path_parser.add_argument("package")
    path_parser.add_argument("--url", help="Remote screenshot URL")
    path_parser.add_argument("--no-fetch", action="store_true", help="Don't download uncached screenshots")

    blob_parser = subparsers.add_parser("blob", help="Write the image content for a package")
    blob_parser.add_argument("package")
    blob_parser.add_argument("--url", help="Remote screenshot URL")
    blob_parser.add_argument(
        "--type",
        choices=[t.value for t in BlobType],
        default=BlobType.SCREENSHOT.value,
        help="Original screenshot or resized thumbnail",
    )
    blob_parser.add_argument("-o", "--output", help="Output file (default: stdout)")

    category_parser = subparsers.add_parser("category", help="Print the default image category")
    category_parser.add_argument("package")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "category":
        print(resolve_default_category(args.package).name.lower())
        return 0

    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    resolver = build_resolver(settings)
    try:
        if args.command == "path":
            path = resolver.resolve_path(args.package, args.url, fetch=not args.no_fetch)
            if path is None:
                return 1
            print(path)
            return 0

        blob = resolver.resolve_blob(args.package, args.url, BlobType(args.type))
        if args.output:
            with open(args.output, "wb") as f:
                f.write(blob)
        else:
            sys.stdout.buffer.write(blob)
        return 0
    finally:
        resolver.fetcher.close()


if __name__ == "__main__":
    sys.exit(main())
