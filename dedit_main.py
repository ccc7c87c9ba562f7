#! python3
# coding: utf-8

CONF = {
    'lang': 'us',
    'game': 'ffx',
    # game / utf8
    'encoding': 'game',
    'index_type': 'i16_x2',
    'macro': {
        'path': None,
        # 10 / 11 / 16 by format generation
        'sections': 16,
    },
    # table files for langs without a builtin charset, set per install
    'charset': {
        'jp': None,
        'ch': None,
        'kr': None,
    },
    'output': {
        'dir': '.',
        'text_ext': '.txt',
    },
}

import argparse
import os, os.path
import sys, time

from dedit_sect import DEditError, MD_SECTION_FORMATS, INDEX_TYPES, report
from dedit_charset import GAMES, WESTERN_LANGS, make_charset
from dedit_macro import (
    build_macro_table, decompile_macro_dict, compile_macro_dict,
    parse_macro_dict_text,
)
from dedit_compiler import c_dedit_compiler

MODES = ['decompile', 'decompile-macro', 'compile', 'compile-macro', 'inspect']

def parse_segment(val):
    toks = [t.strip() for t in val.split(':') if t.strip()]
    if len(toks) != 2:
        report('warning', 'invalid segment format; ignoring')
        return None
    rs = []
    for nm, tok in zip(['start', 'end'], toks):
        try:
            v = int(tok)
        except ValueError:
            try:
                v = int(tok, 16)
            except ValueError:
                report('warning', f'{nm} of segment uninterpretable; ignoring')
                return None
        rs.append(v)
    return tuple(rs)

class c_dedit_batch:

    def __init__(self, conf):
        self.conf = conf
        self.chst = None
        self._md_chst = None
        self.fails = 0

    def _charset_path(self):
        lang = self.conf['lang']
        path = self.conf.get('charset_path')
        if path:
            return path
        if lang in WESTERN_LANGS:
            return None
        return self.conf['charset'].get(lang)

    def load_charset(self, encoding = None):
        if encoding is None:
            encoding = self.conf['encoding']
        return make_charset(
            self.conf['lang'], self.conf['game'],
            encoding, self._charset_path())

    # macro dicts are always game encoded
    @property
    def md_chst(self):
        if self._md_chst is None:
            self._md_chst = self.load_charset('game')
        return self._md_chst

    def load_macros(self):
        # rebuilt per file, a table never leaks into the next one
        path = self.conf['macro']['path']
        if not path:
            return None
        return build_macro_table(
            self.load_bin(path), self.md_chst, self.conf['macro']['sections'])

    def load_bin(self, fn):
        with open(fn, 'rb') as fd:
            return fd.read()

    def save_bin(self, fn, raw):
        with open(fn, 'wb') as fd:
            fd.write(raw)

    def load_txt(self, fn):
        with open(fn, 'r', encoding = 'utf-8',
                errors = 'surrogateescape', newline = '') as fd:
            return fd.read()

    def save_txt(self, fn, txt):
        with open(fn, 'w', encoding = 'utf-8',
                errors = 'surrogateescape', newline = '') as fd:
            fd.write(txt)

    def _out_path(self, fn, as_txt):
        odir = self.conf['output']['dir']
        bn = os.path.basename(fn)
        if as_txt:
            bn += self.conf['output']['text_ext']
        else:
            bn = os.path.splitext(bn)[0]
        return os.path.join(odir, bn)

    # modes

    def decompile_file(self, fn):
        cmp = c_dedit_compiler(self.chst, self.conf['index_type'], self.load_macros())
        txt = cmp.decompile(self.load_bin(fn), self.conf.get('segment'))
        dfn = self._out_path(fn, True)
        self.save_txt(dfn, txt)
        return dfn

    def compile_file(self, fn):
        macros = self.load_macros()
        if macros is None:
            raise DEditError('compile needs a macro dictionary')
        cmp = c_dedit_compiler(self.chst, self.conf['index_type'], macros)
        raw = cmp.compile(self.load_txt(fn))
        dfn = self._out_path(fn, False)
        self.save_bin(dfn, raw)
        return dfn

    def decompile_macro_file(self, fn):
        txt = decompile_macro_dict(
            self.load_bin(fn), self.md_chst, self.conf['macro']['sections'])
        dfn = self._out_path(fn, True)
        self.save_txt(dfn, txt)
        return dfn

    def compile_macro_file(self, fn):
        sects = parse_macro_dict_text(self.load_txt(fn))
        raw = compile_macro_dict(sects, self.md_chst, self.conf['macro']['sections'])
        dfn = self._out_path(fn, False)
        self.save_bin(dfn, raw)
        return dfn

    def inspect_file(self, fn):
        cmp = c_dedit_compiler(self.chst, self.conf['index_type'])
        for line in cmp.inspect(self.load_bin(fn), self.conf.get('segment')):
            print(line)
        return '-'

    def run(self, mode, fns):
        hndl = {
            'decompile': self.decompile_file,
            'decompile-macro': self.decompile_macro_file,
            'compile': self.compile_file,
            'compile-macro': self.compile_macro_file,
            'inspect': self.inspect_file,
        }[mode]
        self.chst = self.load_charset()
        self._md_chst = None
        self.fails = 0
        tm = time.perf_counter()
        for fn in fns:
            try:
                dfn = hndl(fn)
            except (DEditError, OSError) as ex:
                report('error', f'{fn}: {ex}')
                self.fails += 1
                continue
            report('info', f'{os.path.basename(fn)} -> {dfn}')
        tm = time.perf_counter() - tm
        report('info', f'processed {len(fns)} files in {tm:.3f}s, {self.fails} failed')
        return self.fails

def make_arg_parser():
    psr = argparse.ArgumentParser(
        description = 'Perform various operations on FFX/X-2 dialogue files and macro dictionaries.')
    psr.add_argument('mode', choices = MODES)
    psr.add_argument('-i', '--input', nargs = '+', required = True,
        help = 'input file(s) to process')
    psr.add_argument('-o', '--output',
        help = 'folder to emit outputs to, must already exist')
    psr.add_argument('-s', '--segment',
        help = 'part of the file to interpret, as START:END byte offsets')
    psr.add_argument('-e', '--encoding', choices = ['game', 'utf8'],
        help = 'encoding of the input file')
    psr.add_argument('-l', '--lang',
        help = 'language of the input file')
    psr.add_argument('-it', '--index-type', choices = sorted(INDEX_TYPES),
        help = 'index type of the dialogue file')
    psr.add_argument('-g', '--game-type', choices = sorted(GAMES),
        help = 'game of the dialogue file')
    psr.add_argument('-m', '--macro-dict',
        help = 'dictionary used to resolve macro refs')
    psr.add_argument('--sections', type = int, choices = MD_SECTION_FORMATS,
        help = 'section count of the macro dictionary')
    psr.add_argument('--charset',
        help = 'charset table file (.json or newline-delimited text)')
    return psr

def conf_from_args(args, conf = CONF):
    conf = {
        **conf,
        'macro': dict(conf['macro']),
        'output': dict(conf['output']),
    }
    for k, a in [
            ('encoding', args.encoding),
            ('lang', args.lang),
            ('index_type', args.index_type),
            ('game', args.game_type),
            ('charset_path', args.charset)]:
        if a:
            conf[k] = a
    if args.output:
        conf['output']['dir'] = args.output
    if args.macro_dict:
        conf['macro']['path'] = args.macro_dict
    if args.sections:
        conf['macro']['sections'] = args.sections
    if args.segment:
        conf['segment'] = parse_segment(args.segment)
    return conf

def main(argv = None):
    args = make_arg_parser().parse_args(argv)
    conf = conf_from_args(args)
    if not os.path.isdir(conf['output']['dir']):
        report('error', f'output folder not found: {conf["output"]["dir"]}')
        return 2
    bt = c_dedit_batch(conf)
    try:
        fails = bt.run(args.mode, args.input)
    except DEditError as ex:
        report('error', str(ex))
        return 2
    return 1 if fails else 0

if __name__ == '__main__':
    sys.exit(main())
