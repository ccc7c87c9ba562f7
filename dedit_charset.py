#! python3
# coding: utf-8

import json, re
import os.path

from dedit_sect import (
    c_mark, DEditError, DEditSyntaxError, UnencodableCharacter,
    UnresolvedMacroRef, report,
)

# ===============
#  dedit syntax
# ===============

END_MARKS = ('{END}', '{EOR}')
LINE_BREAK = '\r\n'

_PT_BLOCK_END = re.compile(r'(\{END\}|\{EOR\})(\r\n|\n|\r)?')
_PT_BLANK_LINES = re.compile(r'(?:[ \t]*(?:\r\n|\n|\r))*')

def split_blocks(txt, skip_blank = False):
    blks = []
    pos = 0
    if skip_blank:
        pos = _PT_BLANK_LINES.match(txt, pos).end()
    for m in _PT_BLOCK_END.finditer(txt):
        blks.append(txt[pos:m.end(1)])
        pos = m.end()
        if skip_blank:
            pos = _PT_BLANK_LINES.match(txt, pos).end()
    rest = txt[pos:]
    if rest.strip():
        blks.append(rest)
    return blks

def strip_end_mark(txt):
    for mk in END_MARKS:
        if txt.endswith(mk):
            return txt[:-len(mk)]
    return txt

# ===============
#    text buf
# ===============

class c_dedit_text_buf(c_mark):

    # name, param count
    _CTR_TAB = {
        0x01: ('PAUSE', 0),
        0x03: ('LF', 0),
        0x07: ('WAIT', 1),
        0x09: ('TIME', 1),
        0x0a: ('COLOR', 1),
        0x0b: ('BTN', 1),
        0x10: ('CHOICE', 1),
        0x12: ('VAR', 1),
        0x23: ('KEY', 1),
    }
    _MACRO_BASE = 0x13
    _MACRO_SECTS = 16
    _LEAD_FIRST = 0x2b
    _LEAD_LAST = 0x2f
    _CHR_BASE = 0x30

    def parse(self):
        self._cidx = 0
        self._decode()
        return self

    def _gc(self):
        c = self.U8(self._cidx)
        self._cidx += 1
        return c

    def _get_tok(self):
        c = self._gc()
        if c == 0:
            if self._cidx == self.accessable_top:
                return 'END', 0
            return 'NUL', 0
        elif c in self._CTR_TAB:
            nm, pcnt = self._CTR_TAB[c]
            prm = self._gc() if pcnt else None
            return 'CTR_FUNC', (c, prm)
        elif self._MACRO_BASE <= c < self._MACRO_BASE + self._MACRO_SECTS:
            return 'MACRO', (c - self._MACRO_BASE, self._gc())
        elif self._LEAD_FIRST <= c <= self._LEAD_LAST:
            return 'CHR', (c << 8) | self._gc()
        elif c >= self._CHR_BASE:
            return 'CHR', c
        else:
            return 'ERR_UNKNOWN', c

    def _decode(self):
        toks = []
        top = self.accessable_top
        while self._cidx < top:
            toks.append(self._get_tok())
        if not toks or toks[-1][0] != 'END':
            toks.append(('EOR', 0))
        self.tokens = toks

    @classmethod
    def ctr_names(cls):
        return {nm: (op, pcnt) for op, (nm, pcnt) in cls._CTR_TAB.items()}

    @classmethod
    def is_lead(cls, c):
        return cls._LEAD_FIRST <= c <= cls._LEAD_LAST

class c_dedit_text_buf_x2(c_dedit_text_buf):

    _CTR_TAB = {
        **c_dedit_text_buf._CTR_TAB,
        0x0c: ('SPEED', 1),
        0x2a: ('VOICE', 1),
    }

GAMES = {
    'ffx': c_dedit_text_buf,
    'ffx2': c_dedit_text_buf_x2,
}

# ===============
#    charset
# ===============

class c_dedit_charset:

    NAME = 'null'

    # zero-length records still get a block
    keep_empty = False
    # blank lines between blocks are not record text
    skip_blank = True

    def __init__(self, game):
        try:
            self.buf_cls = GAMES[game.lower()]
        except (KeyError, AttributeError):
            raise DEditError(f'unknown game: {game}') from None
        self.game = game.lower()
        self._ctr_names = self.buf_cls.ctr_names()
        self.reset()

    def reset(self):
        self.chst = {}
        self.chst_r = {}

    def decode_char(self, code):
        return self.chst.get(code, None)

    def encode_char(self, char):
        return self.chst_r.get(char, None)

    def _set_char(self, code, char):
        if not char:
            return
        self.chst[code] = char
        if not char in self.chst_r:
            self.chst_r[char] = code

    # decode

    def _decode_tok(self, tok, macros):
        typ, val = tok
        if typ == 'CHR':
            dc = self.decode_char(val)
            if dc is None:
                return f'{{U:{val:02X}}}'
            return dc
        elif typ == 'CTR_FUNC':
            op, prm = val
            nm = self.buf_cls._CTR_TAB[op][0]
            if prm is None:
                return f'{{{nm}}}'
            return f'{{{nm}:{prm:02X}}}'
        elif typ == 'MACRO':
            sect, slot = val
            if macros is None:
                return f'{{MACRO:{sect}:{slot}}}'
            return macros.resolve(sect, slot)
        elif typ == 'ERR_UNKNOWN':
            return f'{{X:{val:02X}}}'
        else:
            return f'{{{typ}}}'

    def decode_tokens(self, toks, macros = None):
        for tok in toks:
            yield self._decode_tok(tok, macros)

    def decode(self, raw, macros = None):
        buf = self.buf_cls(raw, 0).parse()
        return ''.join(self.decode_tokens(buf.tokens, macros))

    # encode

    def _parse_ctr(self, cs, macros):
        cs = cs.split(':')
        nm = cs[0]
        try:
            if nm in ('END', 'NUL'):
                if len(cs) == 1:
                    return [0]
            elif nm == 'EOR':
                if len(cs) == 1:
                    return []
            elif nm == 'MACRO':
                if len(cs) == 3:
                    sect = int(cs[1])
                    slot = int(cs[2])
                    if (0 <= sect < self.buf_cls._MACRO_SECTS
                            and 0 <= slot <= 0xff):
                        if not macros is None and not (sect, slot) in macros:
                            raise UnresolvedMacroRef(sect, slot)
                        return [self.buf_cls._MACRO_BASE + sect, slot]
            elif nm == 'U':
                if len(cs) == 2:
                    return self._code_bytes(int(cs[1], 16))
            elif nm == 'X':
                if len(cs) == 2:
                    v = int(cs[1], 16)
                    if 0 <= v <= 0xff:
                        return [v]
            elif nm in self._ctr_names:
                op, pcnt = self._ctr_names[nm]
                if pcnt == 0 and len(cs) == 1:
                    return [op]
                elif pcnt == 1 and len(cs) == 2:
                    v = int(cs[1], 16)
                    if 0 <= v <= 0xff:
                        return [op, v]
        except UnresolvedMacroRef:
            raise
        except ValueError:
            pass
        tok = '{' + ':'.join(cs) + '}'
        raise DEditSyntaxError(f'invalid ctrl: {tok!r}')

    def _code_bytes(self, code):
        if code > 0xff:
            ch = (code >> 8) & 0xff
            if not self.buf_cls.is_lead(ch) or code > 0xffff:
                raise ValueError('invalid code')
            return [ch, code & 0xff]
        elif code < 0:
            raise ValueError('invalid code')
        return [code]

    def _encode_tok(self, gc, macros):
        try:
            c = next(gc)
        except StopIteration:
            return 'EOS', None
        if c == '{':
            cs = []
            while True:
                try:
                    c = next(gc)
                except StopIteration:
                    tok = '{' + ''.join(cs)
                    raise DEditSyntaxError(f'unclosed ctrl: {tok!r}') from None
                if c == '}':
                    break
                elif c == '{':
                    tok = '{' + ''.join(cs) + '{'
                    raise DEditSyntaxError(f'nested ctrl: {tok!r}')
                cs.append(c)
            return 'CTR', self._parse_ctr(''.join(cs), macros)
        ch = self.encode_char(c)
        if ch is None:
            raise UnencodableCharacter(c, self.NAME)
        return 'CHR', self._code_bytes(ch)

    def encode(self, txt, macros = None):
        gci = iter(txt)
        buf = bytearray()
        while True:
            ttyp, tbs = self._encode_tok(gci, macros)
            if ttyp == 'EOS':
                break
            buf.extend(tbs)
        return bytes(buf)

    def __repr__(self):
        return f'<charset {self.NAME}/{self.game}>'

class c_dedit_charset_western(c_dedit_charset):

    NAME = 'western'

    # \0 is a hole, braces stay reserved for ctrls
    _TAB_BASE = 0x30
    _TAB = (
        '0123456789'
        ' !"#$%&\'()*+,-./'
        ':;<=>?'
        'ABCDEFGHIJKLMNOPQRSTUVWXYZ'
        '[\\]^_‘'
        'abcdefghijklmnopqrstuvwxyz'
        '\0|\0~'
        '·“”’…«»¡¿–—°€♪♥'
        'ÀÁÂÄÇÈÉÊËÌÍÎÏÑÒÓÔÖÙÚÛÜß'
        'àáâäçèéêëìíîïñòóôöùúûü'
    )

    def __init__(self, lang, game):
        self.lang = lang
        super().__init__(game)

    def reset(self):
        super().reset()
        for i, ch in enumerate(self._TAB):
            if ch != '\0':
                self._set_char(self._TAB_BASE + i, ch)

class c_dedit_charset_file(c_dedit_charset):

    NAME = 'file'

    # code of line n in a table file
    _LINE_BASE = 0x30
    _LINE_SPAN = 0xd0

    def __init__(self, path, game):
        self.path = path
        super().__init__(game)

    def _line_code(self, n):
        if n < self._LINE_SPAN:
            return self._LINE_BASE + n
        n -= self._LINE_SPAN
        ch = self.buf_cls._LEAD_FIRST + n // self._LINE_SPAN
        if ch > self.buf_cls._LEAD_LAST:
            return None
        return (ch << 8) | (self._LINE_BASE + n % self._LINE_SPAN)

    def _load_json(self, fd):
        cs = json.load(fd)
        if isinstance(cs, list):
            # (chst, chst_r) pair
            cs = cs[0]
        for k, v in cs.items():
            self._set_char(int(k, 0), v)

    def _load_txt(self, fd):
        for n, line in enumerate(fd.read().splitlines()):
            code = self._line_code(n)
            if code is None:
                report('warning', f'charset {self.path}: line {n + 1} out of code range, ignored')
                break
            self._set_char(code, line)

    def load(self):
        self.reset()
        try:
            with open(self.path, 'r', encoding = 'utf-8') as fd:
                if os.path.splitext(self.path)[1].lower() == '.json':
                    self._load_json(fd)
                else:
                    self._load_txt(fd)
        except (OSError, ValueError, AttributeError) as ex:
            raise DEditError(f'invalid charset file {self.path}: {ex}') from ex
        self.NAME = os.path.basename(self.path)
        return self

class c_dedit_charset_utf8(c_dedit_charset):

    NAME = 'utf8'

    keep_empty = True
    skip_blank = False

    def decode(self, raw, macros = None):
        txt = bytes(raw).decode('utf-8', 'surrogateescape')
        for mk in END_MARKS:
            if mk in txt:
                # would split into two records on compile
                raise DEditSyntaxError(f'record holds end mark {mk}: {txt!r}')
        return txt + '{END}'

    def encode(self, txt, macros = None):
        return strip_end_mark(txt).encode('utf-8', 'surrogateescape')

WESTERN_LANGS = ('us', 'de', 'fr', 'it', 'sp')

def make_charset(lang, game, encoding = 'game', path = None):
    encoding = encoding.lower()
    if encoding == 'utf8':
        return c_dedit_charset_utf8(game)
    elif encoding != 'game':
        raise DEditError(f'unknown encoding: {encoding}')
    if path:
        return c_dedit_charset_file(path, game).load()
    if lang and lang.lower() in WESTERN_LANGS:
        return c_dedit_charset_western(lang.lower(), game)
    raise DEditError(f'no builtin charset for {lang}/{game}, give a charset file')
