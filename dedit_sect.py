#! python3
# coding: utf-8

# ===============
#     common
# ===============

def report(*args):
    r = ' '.join(a for a in args if a)
    try:
        print(r)
    except UnicodeEncodeError:
        # console can not take it, e.g. surrogate escaped bytes
        print(r.encode('ascii', 'backslashreplace').decode('ascii'))
    return r

def readval_le(raw, offset, size, signed):
    neg = False
    v = 0
    endpos = offset + size - 1
    for i in range(endpos, offset - 1, -1):
        b = raw[i]
        if signed and i == endpos and b > 0x7f:
            neg = True
            b &= 0x7f
        v <<= 8
        v += b
    return v - (1 << (size*8 - 1)) if neg else v

def writeval_le(val, dst, offset, size):
    if val < 0:
        val += (1 << (size*8))
    for i in range(offset, offset + size):
        dst[i] = (val & 0xff)
        val >>= 8

# ===============
#     errors
# ===============

class DEditError(ValueError):
    pass

class MalformedIndex(DEditError):
    pass

class MalformedMacroDict(DEditError):
    pass

class UnresolvableSection(MalformedMacroDict):
    pass

class UnresolvedMacroRef(DEditError):

    def __init__(self, section, slot):
        super().__init__(f'unresolved macro ref: {{MACRO:{section}:{slot}}}')
        self.section = section
        self.slot = slot

class UnencodableCharacter(DEditError):

    def __init__(self, char, charset = None):
        nm = f' in charset {charset}' if charset else ''
        super().__init__(f'unencodable char: {char!r} (U+{ord(char):04X}){nm}')
        self.char = char

class TruncatedRead(DEditError):
    pass

class DEditSyntaxError(DEditError):
    pass

# ===============
#      mark
# ===============

class c_mark:

    def __init__(self, raw, offset):
        self._raw = raw
        # mark from buf
        self.offset = offset
        self.parent = None

    @property
    def raw(self):
        if self.parent:
            return self.parent.raw
        return self._raw

    # mark from base
    @property
    def real_offset(self):
        if self.parent:
            return self.parent.real_offset + self.offset
        return self.offset

    @property
    def accessable_top(self):
        return len(self.raw) - self.real_offset

    def readval(self, pos, cnt, signed):
        st = self.real_offset + pos
        if pos < 0 or st + cnt > len(self.raw):
            raise TruncatedRead(
                f'read {cnt} bytes at 0x{st:x} out of 0x{len(self.raw):x}')
        return readval_le(self.raw, st, cnt, signed)

    U8  = lambda self, pos: self.readval(pos, 1, False)
    U32 = lambda self, pos: self.readval(pos, 4, False)

    def BYTES(self, pos, cnt):
        st = self.real_offset + pos
        if cnt is None:
            ed = len(self.raw)
        else:
            ed = st + cnt
            if ed > len(self.raw):
                raise TruncatedRead(
                    f'read {cnt} bytes at 0x{st:x} out of 0x{len(self.raw):x}')
        return bytes(self.raw[st: ed])

    def sub(self, pos, cls = None):
        if not cls:
            cls = c_mark
        s = cls(None, pos)
        s.parent = self
        return s

# ===============
#    index type
# ===============

class c_dedit_index_type:

    NAME = None
    # bytes of the stored offset
    _IDX_WIDTH = 2
    # bytes of one entry
    _IDX_STRIDE = 2

    @property
    def width(self):
        return self._IDX_WIDTH

    @property
    def stride(self):
        return self._IDX_STRIDE

    def read_entry(self, mark, pos):
        return mark.readval(pos, self._IDX_WIDTH, False)

    def write_entry(self, buf, val, pos):
        if not 0 <= val < (1 << (self._IDX_WIDTH * 8)):
            raise MalformedIndex(
                f'offset 0x{val:x} overflows {self.NAME} entry')
        writeval_le(val, buf, pos, self._IDX_WIDTH)

    def __repr__(self):
        return f'<index {self.NAME}>'

class c_dedit_index_i16_x2(c_dedit_index_type):
    NAME = 'i16_x2'
    _IDX_WIDTH = 2
    _IDX_STRIDE = 2

class c_dedit_index_i16_x4(c_dedit_index_type):
    NAME = 'i16_x4'
    _IDX_WIDTH = 2
    _IDX_STRIDE = 4

    # offset is stored twice, the second copy is not read back
    def write_entry(self, buf, val, pos):
        super().write_entry(buf, val, pos)
        super().write_entry(buf, val, pos + self._IDX_WIDTH)

class c_dedit_index_i32_x4(c_dedit_index_type):
    NAME = 'i32_x4'
    _IDX_WIDTH = 4
    _IDX_STRIDE = 4

INDEX_TYPES = {
    c.NAME: c() for c in [
        c_dedit_index_i16_x2,
        c_dedit_index_i16_x4,
        c_dedit_index_i32_x4,
    ]}

def get_index_type(itype):
    if isinstance(itype, c_dedit_index_type):
        return itype
    try:
        return INDEX_TYPES[itype.lower()]
    except (KeyError, AttributeError):
        raise DEditError(f'unknown index type: {itype}') from None

# ===============
#   index codec
# ===============

def sizeof_index_buffer(record_count, itype):
    itype = get_index_type(itype)
    return max(record_count, 1) * itype.stride

def read_index(buf, itype, base = 0):
    itype = get_index_type(itype)
    mark = buf if isinstance(buf, c_mark) else c_mark(buf, 0)
    stp = itype.stride
    if mark.accessable_top - base < stp:
        raise TruncatedRead(
            f'index at 0x{base:x} needs {stp} bytes, '
            f'{max(mark.accessable_top - base, 0)} left')
    # entries are offsets into mark, base only moves the index itself
    idx_end = itype.read_entry(mark, base)
    if idx_end == 0:
        # explicit empty index
        return 0, stp
    idx_len = idx_end - base
    if idx_len < stp or idx_len % stp:
        raise MalformedIndex(
            f'first entry 0x{idx_end:x} is not a whole {itype.NAME} index at 0x{base:x}')
    if idx_end > mark.accessable_top:
        raise MalformedIndex(
            f'index end 0x{idx_end:x} past buffer top 0x{mark.accessable_top:x}')
    return idx_end, stp

def read_indices(buf, itype, base = 0, top = None):
    itype = get_index_type(itype)
    mark = buf if isinstance(buf, c_mark) else c_mark(buf, 0)
    if top is None:
        top = mark.accessable_top
    idx_end, stp = read_index(mark, itype, base)
    if idx_end == 0:
        return [top]
    if idx_end > top:
        raise MalformedIndex(
            f'index end 0x{idx_end:x} past record top 0x{top:x}')
    idxs = [idx_end]
    for pos in range(base + stp, idx_end, stp):
        ofs = itype.read_entry(mark, pos)
        if ofs < idxs[-1] or ofs > top:
            raise MalformedIndex(
                f'entry {(pos - base) // stp} offset 0x{ofs:x} not in '
                f'[0x{idxs[-1]:x}, 0x{top:x}]')
        idxs.append(ofs)
    idxs.append(top)
    return idxs

def write_indices(records, itype):
    itype = get_index_type(itype)
    stp = itype.stride
    cnt = len(records)
    buf = bytearray(sizeof_index_buffer(cnt, itype))
    if cnt == 0:
        return bytes(buf)
    ofs = cnt * stp
    for i, rec in enumerate(records):
        itype.write_entry(buf, ofs, i * stp)
        ofs += len(rec)
    return bytes(buf)

# ===============
#    container
# ===============

class c_dedit_sect_container(c_mark):

    def parse(self, itype, top = None, base = 0):
        self.itype = get_index_type(itype)
        self.indices = read_indices(self, self.itype, base, top)
        return self

    @property
    def tsize(self):
        return len(self.indices) - 1

    def get_range(self, idx):
        if not 0 <= idx < self.tsize:
            raise IndexError('overflow')
        return self.indices[idx], self.indices[idx + 1]

    def get_record(self, idx):
        st, ed = self.get_range(idx)
        return self.BYTES(st, ed - st)

    def iter_records(self):
        for i in range(self.tsize):
            st, ed = self.get_range(i)
            yield i, st, ed, self.BYTES(st, ed - st)

# ===============
#   macro dict
# ===============

MD_HEADER_SIZE = 0x40
MD_SECTION_NR = 16
MD_SECTION_FORMATS = (10, 11, 16)

def next_non_null_section(sections):
    for sofs in sections:
        if sofs != 0:
            return sofs
    raise UnresolvableSection('no section boundary after section')

class c_dedit_sect_macrodict(c_mark):

    _SECT_WIDTH = 4

    def parse(self, sect_nr = MD_SECTION_NR):
        if not 0 < sect_nr <= MD_SECTION_NR:
            raise MalformedMacroDict(f'invalid section count: {sect_nr}')
        top = self.accessable_top
        if top < MD_HEADER_SIZE:
            raise MalformedMacroDict(
                f'header needs 0x{MD_HEADER_SIZE:x} bytes, got 0x{top:x}')
        sects = [
            self.U32(i * self._SECT_WIDTH)
            for i in range(sect_nr)]
        if not any(sects):
            raise MalformedMacroDict('no present section')
        for i, sofs in enumerate(sects):
            if sofs and not MD_HEADER_SIZE <= sofs < top:
                raise MalformedMacroDict(
                    f'section {i} offset 0x{sofs:x} not in '
                    f'[0x{MD_HEADER_SIZE:x}, 0x{top:x})')
        # pseudo section after the last one
        self.sections = sects + [top]
        return self

    @property
    def tsize(self):
        return len(self.sections) - 1

    def section_range(self, idx):
        st = self.sections[idx]
        if st == 0:
            return None
        try:
            ed = next_non_null_section(self.sections[idx + 1:])
        except UnresolvableSection:
            raise UnresolvableSection(
                f'section {idx} at 0x{st:x} has no closing boundary') from None
        if ed <= st:
            raise UnresolvableSection(
                f'section {idx} at 0x{st:x} closes at 0x{ed:x}')
        return st, ed

    def get_section(self, idx):
        rng = self.section_range(idx)
        if rng is None:
            return None
        st, ed = rng
        sect = self.sub(st, cls = c_dedit_sect_container)
        return sect.parse('i16_x2', ed - st)

    def iter_sections(self):
        for i in range(self.tsize):
            sect = self.get_section(i)
            if sect is None:
                continue
            yield i, sect
