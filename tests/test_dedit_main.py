"""Tests for the batch driver and command line."""

import pytest

import dedit_main
from dedit_main import main, parse_segment
from dedit_sect import report


def _read_txt(fn):
    with open(fn, 'r', encoding = 'utf-8', newline = '') as fd:
        return fd.read()


def _write_txt(fn, txt):
    with open(fn, 'w', encoding = 'utf-8', newline = '') as fd:
        fd.write(txt)


@pytest.fixture
def md_file(tmp_path, macro_raw):
    fn = tmp_path / 'md.bin'
    fn.write_bytes(macro_raw)
    return fn


class TestParseSegment:
    @pytest.mark.parametrize('val, want', [
        ('0x10:20', (16, 20)),
        ('ff:10', (255, 10)),
        (' 2 : 8 ', (2, 8)),
        ('10', None),
        ('zz:1', None),
        ('1:2:3', None),
    ])
    def test_parse(self, val, want):
        assert parse_segment(val) == want


class TestMain:
    def test_compile_decompile(self, tmp_path, md_file):
        src = tmp_path / 'dlg.txt'
        _write_txt(src, 'A{END}\r\n{MACRO:3:0}{END}\r\n')
        out = tmp_path / 'out'
        out.mkdir()
        assert main(['compile', '-i', str(src), '-o', str(out), '-m', str(md_file)]) == 0
        raw = (out / 'dlg').read_bytes()
        assert raw == bytes([0x04, 0x00, 0x06, 0x00, 0x50, 0x00, 0x16, 0x00, 0x00])

        back = tmp_path / 'back'
        back.mkdir()
        assert main(['decompile', '-i', str(out / 'dlg'), '-o', str(back)]) == 0
        assert _read_txt(back / 'dlg.txt') == 'A{END}\r\n{MACRO:3:0}{END}\r\n'

        assert main(['decompile', '-i', str(out / 'dlg'), '-o', str(back),
            '-m', str(md_file)]) == 0
        assert _read_txt(back / 'dlg.txt') == 'A{END}\r\nworld{END}\r\n'

    def test_bad_file_does_not_stop_batch(self, tmp_path, capsys):
        bad = tmp_path / 'bad.bin'
        bad.write_bytes(bytes([0x03, 0x00, 0x00]))
        good = tmp_path / 'good.bin'
        good.write_bytes(bytes([0x02, 0x00, 0x50, 0x00]))
        out = tmp_path / 'out'
        out.mkdir()
        assert main(['decompile', '-i', str(bad), str(good), '-o', str(out)]) == 1
        assert _read_txt(out / 'good.bin.txt') == 'A{END}\r\n'
        assert not (out / 'bad.bin.txt').exists()
        assert 'error' in capsys.readouterr().out

    def test_compile_needs_macro_dict(self, tmp_path):
        src = tmp_path / 'dlg.txt'
        _write_txt(src, 'A{END}\r\n')
        assert main(['compile', '-i', str(src), '-o', str(tmp_path)]) == 1
        assert not (tmp_path / 'dlg').exists()

    def test_missing_output_dir(self, tmp_path):
        src = tmp_path / 'dlg.bin'
        src.write_bytes(bytes(2))
        assert main(['decompile', '-i', str(src), '-o', str(tmp_path / 'nope')]) == 2

    def test_missing_charset(self, tmp_path):
        src = tmp_path / 'dlg.bin'
        src.write_bytes(bytes(2))
        assert main(['decompile', '-i', str(src), '-o', str(tmp_path), '-l', 'xx']) == 2

    def test_segment(self, tmp_path):
        src = tmp_path / 'dlg.bin'
        src.write_bytes(b'\xff\xff' + bytes([0x04, 0x00, 0x50, 0x00]))
        assert main(['decompile', '-i', str(src), '-o', str(tmp_path),
            '-s', '2:6']) == 0
        assert _read_txt(tmp_path / 'dlg.bin.txt') == 'A{END}\r\n'

    def test_utf8(self, tmp_path):
        src = tmp_path / 'dlg.bin'
        src.write_bytes(bytes([0x04, 0x00, 0x05, 0x00]) + b'a')
        assert main(['decompile', '-i', str(src), '-o', str(tmp_path), '-e', 'utf8']) == 0
        assert _read_txt(tmp_path / 'dlg.bin.txt') == 'a{END}\r\n{END}\r\n'

    def test_macro_dict_round_trip(self, tmp_path, md_file, macro_raw):
        out = tmp_path / 'out'
        out.mkdir()
        assert main(['decompile-macro', '-i', str(md_file), '-o', str(out)]) == 0
        back = tmp_path / 'back'
        back.mkdir()
        assert main(['compile-macro', '-i', str(out / 'md.bin.txt'), '-o', str(back)]) == 0
        assert (back / 'md.bin').read_bytes() == macro_raw

    def test_inspect(self, tmp_path, capsys):
        src = tmp_path / 'dlg.bin'
        src.write_bytes(bytes([0x02, 0x00, 0x50, 0x51, 0x00]))
        assert main(['inspect', '-i', str(src)]) == 0
        out = capsys.readouterr().out
        assert 'index i16_x2: 1 records' in out
        assert '50 51 00' in out

    def test_undecodable_token_does_not_stop_batch(self, tmp_path, md_file, capsys):
        bad = tmp_path / 'a.txt'
        bad.write_bytes(b'{\xff}{END}\r\n')
        good = tmp_path / 'b.txt'
        _write_txt(good, 'A{END}')
        out = tmp_path / 'out'
        out.mkdir()
        assert main(['compile', '-i', str(bad), str(good), '-o', str(out),
            '-m', str(md_file)]) == 1
        assert (out / 'b').read_bytes() == bytes([0x02, 0x00, 0x50, 0x00])
        assert not (out / 'a').exists()
        assert '\\udcff' in capsys.readouterr().out

    def test_macro_table_rebuilt_per_file(self, tmp_path, md_file, monkeypatch):
        tabs = []
        build = dedit_main.build_macro_table
        def counting_build(*args):
            tab = build(*args)
            tabs.append(tab)
            return tab
        monkeypatch.setattr(dedit_main, 'build_macro_table', counting_build)
        fns = []
        for nm in ['a', 'b']:
            fn = tmp_path / f'{nm}.txt'
            _write_txt(fn, '{MACRO:3:0}{END}\r\n')
            fns.append(str(fn))
        out = tmp_path / 'out'
        out.mkdir()
        assert main(['compile', '-i', *fns, '-o', str(out), '-m', str(md_file)]) == 0
        assert len(tabs) == 2
        assert tabs[0] is not tabs[1]

    def test_no_table_for_lang(self, tmp_path, capsys):
        src = tmp_path / 'dlg.bin'
        src.write_bytes(bytes(2))
        assert main(['decompile', '-i', str(src), '-o', str(tmp_path), '-l', 'jp']) == 2
        assert 'give a charset file' in capsys.readouterr().out

    def test_no_section_in_macro_text(self, tmp_path):
        src = tmp_path / 'md.txt'
        _write_txt(src, 'hello{END}\r\n')
        assert main(['compile-macro', '-i', str(src), '-o', str(tmp_path)]) == 1
        assert not (tmp_path / 'md').exists()


class TestReport:
    def test_unprintable(self, capsys):
        assert report('error', 'x\udcff') == 'error x\udcff'
        assert capsys.readouterr().out == 'error x\\udcff\n'
