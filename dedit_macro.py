#! python3
# coding: utf-8

import re

from dedit_sect import (
    c_dedit_sect_macrodict, MD_HEADER_SIZE, MD_SECTION_NR,
    MalformedMacroDict, UnresolvedMacroRef,
    write_indices, writeval_le, report,
)
from dedit_charset import LINE_BREAK, END_MARKS, split_blocks, strip_end_mark

# ===============
#   macro table
# ===============

class c_dedit_macro_table:

    def __init__(self, sect_nr = MD_SECTION_NR):
        self.sect_nr = sect_nr
        self.refs = {}
        self._frozen = False

    def add(self, sect, slot, txt):
        if self._frozen:
            raise RuntimeError('macro table is frozen')
        if not 0 <= sect < self.sect_nr:
            raise MalformedMacroDict(f'invalid macro section: {sect}')
        self.refs[(sect, slot)] = txt

    def freeze(self):
        self._frozen = True
        return self

    def resolve(self, sect, slot):
        try:
            return self.refs[(sect, slot)]
        except KeyError:
            raise UnresolvedMacroRef(sect, slot) from None

    def section(self, sect):
        return [txt for (s, _), txt in self.refs.items() if s == sect]

    def __contains__(self, key):
        return key in self.refs

    def __len__(self):
        return len(self.refs)

# ===============
#     builder
# ===============

def build_macro_table(raw, charset, sect_nr = MD_SECTION_NR):
    md = c_dedit_sect_macrodict(raw, 0).parse(sect_nr)
    tab = c_dedit_macro_table(sect_nr)
    for si, sect in md.iter_sections():
        for k, st, ed, rec in sect.iter_records():
            # inner refs stay as tokens
            tab.add(si, k, strip_end_mark(charset.decode(rec)))
    return tab.freeze()

def decompile_macro_dict(raw, charset, sect_nr = MD_SECTION_NR):
    md = c_dedit_sect_macrodict(raw, 0).parse(sect_nr)
    rs = []
    for si, sect in md.iter_sections():
        rs.append(f'--- SECTION {si} ---{LINE_BREAK}')
        for k, st, ed, rec in sect.iter_records():
            rs.append(charset.decode(rec))
            rs.append(LINE_BREAK)
        rs.append(f'--- END SECTION {si} ---{LINE_BREAK}{LINE_BREAK}')
    return ''.join(rs)

_PT_SECTION = re.compile(
    r'^--- SECTION (\d+) ---\r?\n(.*?)^--- END SECTION \1 ---\r?$',
    re.M | re.S)

def parse_macro_dict_text(txt):
    sects = {}
    for m in _PT_SECTION.finditer(txt):
        si = int(m.group(1))
        if si in sects:
            report('warning', f'duplicated macro section {si}, later one kept')
        sects[si] = split_blocks(m.group(2), True)
    if not sects:
        raise MalformedMacroDict('no macro section found in text')
    return sects

def compile_macro_dict(sects, charset, sect_nr = MD_SECTION_NR):
    if not sects:
        raise MalformedMacroDict('no macro section to compile')
    hdr = bytearray(MD_HEADER_SIZE)
    body = bytearray()
    for si in sorted(sects):
        if not 0 <= si < sect_nr:
            raise MalformedMacroDict(f'invalid macro section: {si}')
        recs = []
        for txt in sects[si]:
            if not txt.endswith(END_MARKS):
                txt += '{END}'
            recs.append(charset.encode(txt))
        writeval_le(MD_HEADER_SIZE + len(body), hdr, si * 4, 4)
        body.extend(write_indices(recs, 'i16_x2'))
        for rec in recs:
            body.extend(rec)
    return bytes(hdr + body)
