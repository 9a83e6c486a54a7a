import argparse
import io
import logging
import os

import hexdump

from dgdstools.ads import ADSInterpreter
from dgdstools.chunks import ChunkReader
from dgdstools.context import FrameRecorder, PlaybackContext
from dgdstools.errors import DgdsError, FormatError
from dgdstools.player import Player
from dgdstools.profiles import PLATFORMS, Profile, get_extension
from dgdstools.resources import ADSData, BitmapSet, Palette, ResourceLoader, Screen, Song, TTMData
from dgdstools.ttm import TTMInterpreter
from dgdstools.volume import ArchiveIndex

logger = logging.getLogger(__name__)


def open_loader(args, trace=False):
    index = ArchiveIndex(args.index)
    profile = Profile(args.platform, args.align_on_clear)
    return ResourceLoader(index, profile, trace)


def pick_palette(loader, name):
    if name:
        palette = loader.load(name)

        if isinstance(palette, Palette):
            return palette

        logger.warning("%s is not a palette, using grayscale", name)

    return Palette.grayscale()


def cmd_list(args):
    index = ArchiveIndex(args.index)

    for entry in index.entries():
        print("%-12s vol[%d] offset[%08x] size[%08x] hash[%08x]" % (entry.name, entry.volume, entry.offset, entry.size, entry.stored_hash))

    return 0


def export_images(resource, base_filename, palette):
    if isinstance(resource, BitmapSet):
        for i in range(len(resource)):
            bitmap = resource.tile(i)

            if not bitmap.is_empty():
                bitmap.to_image(palette.colors).save("%s_%03d.png" % (base_filename, i))

    elif isinstance(resource, Screen):
        resource.bitmap.to_image(palette.colors).save(base_filename + ".png")

    elif isinstance(resource, Palette):
        with open(base_filename + ".gpl", "w") as outfile:
            outfile.write(resource.to_gpl(os.path.basename(base_filename)))


def cmd_dump(args):
    loader = open_loader(args)
    palette = pick_palette(loader, args.palette)
    profile = loader.profile

    os.makedirs(args.output, exist_ok=True)

    failed = 0
    for entry in loader.index.entries():
        if args.names and entry.name.upper() not in args.names:
            continue

        print("Dumping %s (%d bytes)" % (entry.name, entry.size))

        try:
            data = entry.read()
            base_filename = os.path.join(args.output, entry.name)

            with open(base_filename, "wb") as outfile:
                outfile.write(data)

            if profile.is_flat(get_extension(entry.name)):
                continue

            reader = ChunkReader(io.BytesIO(data), entry.name, profile)

            for idx, (chunk, payload) in enumerate(reader.iter_chunks()):
                with open("%s.%03d.%s" % (base_filename, idx, chunk.tag), "wb") as outfile:
                    outfile.write(payload)

                if args.hexdump:
                    print("%s [%s] %s" % (entry.name, chunk.parent or "", chunk.type))
                    hexdump.hexdump(payload)

            if args.png:
                export_images(loader.decode(entry.name, data), base_filename, palette)

        except FormatError as e:
            logger.error("%s: %s", entry.name, e)
            failed += 1

    logger.info("%d files failed", failed)
    return 1 if failed else 0


def describe(resource):
    if isinstance(resource, TTMData):
        print("%s: version %s, %d pages, %d script bytes" % (resource.name, resource.version, resource.pages, len(resource.script)))

        for idx, tag in resource.tags.items():
            print("  scene %d: %s" % (idx, tag))

        for insn in TTMInterpreter(None, resource).disassemble():
            print("  %s" % insn)

    elif isinstance(resource, ADSData):
        print("%s: version %s, %d script bytes" % (resource.name, resource.version, len(resource.script)))

        for res_id, name in resource.resources.items():
            print("  res %d: %s%s" % (res_id, name, "" if resource.scripts.get(res_id) else " (missing)"))

        for line in ADSInterpreter(None, resource).disassemble():
            print("  %s" % line)

    elif isinstance(resource, BitmapSet):
        print("%s: %d tiles" % (resource.name, len(resource)))

        for i, (w, h) in enumerate(zip(resource.widths, resource.heights)):
            print("  %3d: %ux%u" % (i, w, h))

        if resource.matrix is not None:
            print("  matrix %ux%u" % (resource.matrix.width, resource.matrix.height))

    elif isinstance(resource, Song):
        for idx, blob in enumerate(resource.songs):
            print("%s[%d]: %d bytes" % (resource.name, idx, len(blob)))

            for track in resource.tracks(idx):
                print("  %-20s offset[%04x] size[%d]%s" % (track['driver_name'], track['offset'], track['size'], " pcm" if track['pcm'] else ""))

    else:
        print("%s: %r" % (type(resource).__name__, vars(resource) if hasattr(resource, '__dict__') else resource))


def cmd_show(args):
    loader = open_loader(args, trace=args.log_level == "DEBUG")
    resource = loader.load(args.name)

    if resource is None:
        logger.error("%s not found", args.name)
        return 1

    describe(resource)
    return 0


def cmd_play(args):
    loader = open_loader(args)
    script = loader.load(args.name)

    if not isinstance(script, (TTMData, ADSData)):
        logger.error("%s is not a playable script", args.name)
        return 1

    recorder = FrameRecorder(limit=args.frames)
    context = PlaybackContext(loader, recorder)

    player = Player(context, script, strict=args.strict, sleep=lambda seconds: None)
    player.play(args.frames)

    if args.record:
        recorder.save(args.record)

    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="dgdstools")
    parser.add_argument('-i', '--index', help='Archive index file (RESOURCE.MAP)', required=True)
    parser.add_argument('-o', '--output', help='Output folder (optional)', default="output")
    parser.add_argument('-p', '--platform', help='Platform the archive comes from', choices=PLATFORMS, default="dos")
    parser.add_argument('--align-on-clear', help='LZW streams skip to the next code group on a clear', default=False, action="store_true")
    parser.add_argument('--log-level', help='Logging level', default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    sub = subparsers.add_parser('list', help='List archive entries')
    sub.set_defaults(func=cmd_list)

    sub = subparsers.add_parser('dump', help='Dump every entry and its chunks')
    sub.add_argument('names', nargs='*', help='Only dump these files')
    sub.add_argument('--hexdump', help='Hexdump every chunk', default=False, action="store_true")
    sub.add_argument('--png', help='Export bitmaps and screens as PNG', default=False, action="store_true")
    sub.add_argument('--palette', help='Palette used for PNG export', default=None)
    sub.set_defaults(func=cmd_dump)

    sub = subparsers.add_parser('show', help='Describe one decoded resource')
    sub.add_argument('name')
    sub.set_defaults(func=cmd_show)

    sub = subparsers.add_parser('play', help='Play a TTM or ADS script headless')
    sub.add_argument('name')
    sub.add_argument('--frames', help='Stop after this many frames', type=int, default=None)
    sub.add_argument('--record', help='Write the frames to a video or GIF', default=None)
    sub.add_argument('--strict', help='Fail on unhandled opcodes', default=False, action="store_true")
    sub.set_defaults(func=cmd_play)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if hasattr(args, 'names'):
        args.names = [x.upper() for x in args.names]

    try:
        return args.func(args)

    except DgdsError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
