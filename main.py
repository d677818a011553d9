"""Environment Map Editor — command line entry point.

    python main.py matcap studio.hdr studio_matcap.exr --size 1024
    python main.py convert studio.hdr studio.exr --compression none
    python main.py share --db editor.db --import envmap_20240101_120000.json
"""

import argparse
import logging
import sys
from pathlib import Path

from app.application import create_application
from app.core.equirect_resampler import build_matcap
from app.editor_session import EditorSession
from app.export.openexr import COMPRESSION_CODES, ExrExporter
from app.export.radiance_hdr import HdrExporter, read_radiance_hdr

logger = logging.getLogger("envmap")


def _write_image(rgb, width: int, height: int, path: Path, compression: str) -> None:
    suffix = path.suffix.lower()
    if suffix == ".hdr":
        HdrExporter().export(rgb, width, height, path)
    elif suffix == ".exr":
        ExrExporter().export(rgb, width, height, path, compression)
    else:
        raise ValueError(f"Unsupported output type: {path.suffix or path.name}")


def cmd_matcap(args: argparse.Namespace) -> int:
    pixels = read_radiance_hdr(args.input)
    height, width = pixels.shape[:2]
    matcap = build_matcap(pixels, width, height, args.size)
    _write_image(matcap, args.size, args.size, Path(args.output), args.compression)
    logger.info("Wrote %dx%d matcap to %s", args.size, args.size, args.output)
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    pixels = read_radiance_hdr(args.input)
    height, width = pixels.shape[:2]
    _write_image(pixels, width, height, Path(args.output), args.compression)
    logger.info("Wrote %dx%d image to %s", width, height, args.output)
    return 0


def cmd_share(args: argparse.Namespace) -> int:
    app = create_application(sys.argv)
    session = EditorSession(db_path=args.db, url=args.url)
    failed = []
    session.notification.connect(
        lambda level, message: failed.append(message) if level == "error" else None
    )
    session.start(app)
    if args.import_path:
        session.import_settings(args.import_path)
    session.shutdown()
    for message in failed:
        logger.error(message)
    print(session.url_state.url.toString())
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="envmap", description=__doc__.splitlines()[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    matcap = commands.add_parser("matcap", help="reproject a panorama onto a hemisphere")
    matcap.add_argument("input", help="equirectangular Radiance .hdr")
    matcap.add_argument("output", help="destination .hdr or .exr")
    matcap.add_argument("--size", type=int, default=1024, help="output edge length")
    matcap.add_argument("--compression", choices=sorted(COMPRESSION_CODES), default="zip")
    matcap.set_defaults(func=cmd_matcap)

    convert = commands.add_parser("convert", help="re-encode a Radiance .hdr")
    convert.add_argument("input", help="Radiance .hdr")
    convert.add_argument("output", help="destination .hdr or .exr")
    convert.add_argument("--compression", choices=sorted(COMPRESSION_CODES), default="zip")
    convert.set_defaults(func=cmd_convert)

    share = commands.add_parser("share", help="print the shareable address of the stored scene")
    share.add_argument("--db", default=None, help="history database path")
    share.add_argument("--url", default="envmap://editor/", help="base address")
    share.add_argument("--import", dest="import_path", default=None,
                       help="settings .json to load first")
    share.set_defaults(func=cmd_share)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (OSError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
