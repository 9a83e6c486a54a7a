import struct

import pytest

from builders import bmp_file, build_archive, chunk, op, op_string, pal_file, ttm_file
from dgdstools import ttm
from dgdstools.cli import build_parser, main
from dgdstools.volume import NAME_FIELD_SIZE


@pytest.fixture
def archive(tmp_path):
    script = (
        op_string(ttm.LOAD_PALETTE, "GAME.PAL")
        + op_string(ttm.LOAD_BITMAP, "TILES.BMP")
        + op(ttm.SET_BITMAP, 0)
        + op(ttm.DRAW_BITMAP, 10, 10)
        + op(ttm.REFRESH)
        + op(ttm.FINISH)
    )
    files = [
        ("TILES.BMP", bmp_file([(2, 2, b"\x01\x02\x03\x04")])),
        ("GAME.PAL", pal_file(bytes(range(64)) * 12)),
        ("INTRO.TTM", ttm_file(script, {1: "intro"})),
        ("BROKEN.TTM", chunk("VER", b"1")[:6]),
    ]
    return str(build_archive(tmp_path, files))


def test_list(archive, capsys):
    assert main(["-i", archive, "list"]) == 0

    out = capsys.readouterr().out
    assert "TILES.BMP" in out
    assert "INTRO.TTM" in out


def test_dump_writes_files_and_chunks(archive, tmp_path, capsys):
    output = tmp_path / "out"

    result = main(["-i", archive, "-o", str(output), "dump", "--png", "--palette", "GAME.PAL", "--hexdump"])

    assert result == 1
    assert (output / "TILES.BMP").exists()
    assert (output / "TILES.BMP.001.BIN").exists()
    assert (output / "TILES.BMP_000.png").exists()
    assert (output / "GAME.PAL.gpl").exists()
    assert (output / "INTRO.TTM.002.TT3").exists()
    assert "Dumping BROKEN.TTM" in capsys.readouterr().out


def test_dump_selected_names(archive, tmp_path):
    output = tmp_path / "out"

    assert main(["-i", archive, "-o", str(output), "dump", "game.pal"]) == 0
    assert (output / "GAME.PAL").exists()
    assert not (output / "TILES.BMP").exists()


def test_dump_continues_past_truncated_record(tmp_path):
    index = build_archive(tmp_path, [("A.PAL", pal_file(bytes(768))), ("B.PAL", pal_file(bytes(768)))])
    volume_path = tmp_path / "VOLUME.001"
    volume = bytearray(volume_path.read_bytes())
    volume[NAME_FIELD_SIZE:NAME_FIELD_SIZE + 4] = struct.pack("<I", 0x7fffffff)
    volume_path.write_bytes(bytes(volume))
    output = tmp_path / "out"

    assert main(["-i", str(index), "-o", str(output), "dump"]) == 1
    assert not (output / "A.PAL").exists()
    assert (output / "B.PAL").exists()
    assert (output / "B.PAL.000.VGA").exists()


def test_show_disassembles_scripts(archive, capsys):
    assert main(["-i", archive, "show", "INTRO.TTM"]) == 0

    out = capsys.readouterr().out
    assert "scene 1: intro" in out
    assert "LOAD_BITMAP" in out
    assert "\"TILES.BMP\"" in out


def test_show_missing(archive):
    assert main(["-i", archive, "show", "NOPE.TTM"]) == 1


def test_play_records_frames(archive, tmp_path):
    output = tmp_path / "intro.gif"

    assert main(["-i", archive, "play", "INTRO.TTM", "--frames", "5", "--record", str(output)]) == 0
    assert output.exists()


def test_play_refuses_non_scripts(archive):
    assert main(["-i", archive, "play", "GAME.PAL"]) == 1


def test_parser_options():
    args = build_parser().parse_args(["-i", "RESOURCE.MAP", "-p", "amiga", "--log-level", "DEBUG", "play", "X.ADS", "--strict"])

    assert args.platform == "amiga"
    assert args.strict
    assert args.frames is None

    with pytest.raises(SystemExit):
        build_parser().parse_args(["-i", "RESOURCE.MAP", "-p", "c64", "list"])
