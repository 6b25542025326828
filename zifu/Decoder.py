#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# ZIFU - Rewrite file names in ZIP archives to UTF-8
# Copyright (C) 2025-2026 ZIFU contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import re
import unicodedata

from typing import List, Optional, Sequence

from zifu.Kernel import getLogger
from zifu.Settings import SettingsGetter
from zifu.I18n import I18nManager

logger = getLogger(__name__)

# Code points HFS+ stores undecomposed, NFC must not touch them either
HFS_EXCLUSION_RANGES = ((0x2000, 0x2FFF), (0xF900, 0xFAFF), (0x2F800, 0x2FAFF))


def _isHfsExcluded(char):
    codePoint = ord(char)
    return any(low <= codePoint <= high for low, high in HFS_EXCLUSION_RANGES)


def composeFromHfsNfd(text: str) -> str:
    """
    Compose a string decomposed the way HFS+ does (an NFD variant) back to NFC.

    Characters in U+2000-U+2FFF, U+F900-U+FAFF and U+2F800-U+2FAFF are kept as they are,
    NFC would otherwise fold CJK compatibility ideographs into unified ones.
    """
    if text.isascii():
        return text

    composed = []
    run = []
    for char in text:
        if _isHfsExcluded(char):
            if run:
                composed.append(unicodedata.normalize('NFC', ''.join(run)))
                run = []
            composed.append(char)
        else:
            run.append(char)

    if run:
        composed.append(unicodedata.normalize('NFC', ''.join(run)))

    return ''.join(composed)


class Decoder:
    """
    Converts raw file name bytes of a ZIP entry to text.

    Subclasses are stateless values, two decoders are equal when they decode the same encoding.
    """

    encodingName = None
    codecName = None

    def tryDecode(self, data: bytes) -> Optional[str]:
        """
        Decode without substitution.

        Returns:
            str or None: The decoded text, None if any byte sequence is invalid in this encoding
        """
        try:
            return data.decode(self.codecName)
        except UnicodeDecodeError:
            return None

    def decodeLossy(self, data: bytes) -> str:
        """Decode, replacing invalid sequences with U+FFFD."""
        return data.decode(self.codecName, errors='replace')

    def canDecode(self, data: bytes) -> bool:
        return self.tryDecode(data) is not None

    def __eq__(self, other):
        return type(self) is type(other) and self.encodingName == other.encodingName

    def __hash__(self):
        return hash((type(self).__name__, self.encodingName))

    def __repr__(self):
        return f'{type(self).__name__}({self.encodingName})'

    def __str__(self):
        return self.encodingName

    @staticmethod
    def utf8() -> 'Decoder':
        return UTF8_DECODER

    @staticmethod
    def ascii() -> 'Decoder':
        return ASCII_DECODER

    @staticmethod
    def fromCodePage(codePage: int) -> Optional['Decoder']:
        """
        Get the decoder for a Windows/IBM numeric code page.

        Windows multi-byte and ANSI pages resolve to LegacyEncodingDecoder, IBM PC pages to
        OEMCodePageDecoder.

        Returns:
            Decoder or None for unknown code pages
        """
        if codePage in WINDOWS_CODE_PAGES:
            return LegacyEncodingDecoder(*WINDOWS_CODE_PAGES[codePage])

        if codePage in OEMCodePageDecoder.CODE_PAGES:
            return OEMCodePageDecoder(codePage)

        return None

    @staticmethod
    def fromName(label: str) -> Optional['Decoder']:
        """
        Get a decoder from an encoding label such as 'sjis', 'cp437', 'IBM850' or 'OEM-US'.

        Resolution order:
            1. WHATWG encoding labels (case-insensitive, surrounding whitespace ignored)
            2. Numeric code pages written as CPnnn, OEMnnn, OEM nnn or IBMnnn
            3. Names of IBM PC code page 437 (OEM-US, PC-8, DOS Latin US)

        Returns:
            Decoder or None if the label is not recognised
        """
        if not label:
            return None

        key = label.strip().lower()
        if key in UTF8_LABELS:
            return UTF8_DECODER

        if key in WHATWG_LABELS:
            return LegacyEncodingDecoder(*WHATWG_LABELS[key])

        match = OEM_CODE_PAGE_PATTERN.search(label)
        if match:
            decoder = Decoder.fromCodePage(int(match.group(1)))
            if decoder is not None:
                return decoder

        if CP437_ALIAS_PATTERN.search(label):
            return OEMCodePageDecoder(437)

        logger.debug(f"Unknown encoding label: {label}")
        return None

    @staticmethod
    def nativeDefault(localeName: Optional[str] = None) -> 'Decoder':
        """
        Get the decoder for the OEM code page of a locale.

        DOS era archivers and the Windows shell write non-UTF-8 names in the OEM code page
        of the user's locale, so this is the best guess for implicit names.

        Args:
            localeName: Locale such as 'ja_JP.UTF-8', the host locale is used when omitted

        Returns:
            Decoder: Never None, falls back to the configured fallback code page (437 by default)
        """
        if localeName is None:
            babelLocale = I18nManager.getInstance().getHostLocale()
        else:
            babelLocale = I18nManager.parseLocale(localeName)

        if babelLocale is not None:
            codePage = oemCodePageForLocale(babelLocale)
            decoder = Decoder.fromCodePage(codePage) if codePage else None
            if decoder is not None:
                logger.debug(f"Native decoder for locale {babelLocale}: {decoder}")
                return decoder

        fallbackCodePage = SettingsGetter.getInstance().fallbackCodePage
        decoder = Decoder.fromCodePage(fallbackCodePage)
        if decoder is None:
            logger.warning(f"Fallback code page {fallbackCodePage} is unknown, using CP437")
            decoder = OEMCodePageDecoder(437)

        logger.debug(f"No native decoder for locale {babelLocale}, using {decoder}")
        return decoder


class UTF8NFCDecoder(Decoder):
    """UTF-8 decoder that also composes names decomposed by macOS (HFS+ NFD) to NFC."""

    encodingName = 'UTF-8'
    codecName = 'utf-8'

    def tryDecode(self, data):
        text = super().tryDecode(data)
        return None if text is None else composeFromHfsNfd(text)

    def decodeLossy(self, data):
        return composeFromHfsNfd(super().decodeLossy(data))

    def canDecode(self, data):
        # Validity only, composition never fails
        return super().tryDecode(data) is not None


class ASCIIDecoder(Decoder):
    encodingName = 'ASCII'
    codecName = 'ascii'

    def canDecode(self, data):
        return data.isascii()


class OEMCodePageDecoder(Decoder):
    """IBM PC (DOS) single byte code pages, the native encoding of most legacy ZIP tools."""

    CODE_PAGES = frozenset(
        (437, 720, 737, 775, 850, 852, 855, 857, 858, 860, 861, 862, 863, 864, 865, 866, 869, 874)
    )

    def __init__(self, codePage: int):
        if codePage not in self.CODE_PAGES:
            raise ValueError(f'Unsupported OEM code page: {codePage}')

        self.codePage = codePage
        self.encodingName = f'CP{codePage}'
        self.codecName = f'cp{codePage}'


class LegacyEncodingDecoder(Decoder):
    """Decoder for a named legacy encoding (Shift_JIS, GBK, windows-1252...)."""

    def __init__(self, encodingName: str, codecName: str):
        self.encodingName = encodingName
        self.codecName = codecName


UTF8_DECODER = UTF8NFCDecoder()
ASCII_DECODER = ASCIIDecoder()

OEM_CODE_PAGE_PATTERN = re.compile(r'(?:CP|OEM ?|IBM)(\d+)', re.IGNORECASE)
CP437_ALIAS_PATTERN = re.compile(r'(OEM[-_]US|PC-8|DOS[-_ ]?Latin[-_ ]?US)', re.IGNORECASE)

UTF8_LABELS = frozenset(('unicode-1-1-utf-8', 'unicode11utf8', 'unicode20utf8', 'utf-8', 'utf8', 'x-unicode20utf8'))


def _isoLabels(part, *aliases):
    """Spellings of ISO-8859-<part> plus extra aliases."""
    return (f'iso-8859-{part}', f'iso8859-{part}', f'iso8859{part}', f'iso_8859-{part}', *aliases)


# (encoding name, Python codec) -> WHATWG labels
_ENCODING_LABELS = {
    ('IBM866', 'cp866'): ('866', 'cp866', 'csibm866', 'ibm866'),
    ('ISO-8859-2', 'iso8859_2'): _isoLabels(2, 'csisolatin2', 'iso-ir-101', 'iso_8859-2:1987', 'l2', 'latin2'),
    ('ISO-8859-3', 'iso8859_3'): _isoLabels(3, 'csisolatin3', 'iso-ir-109', 'iso_8859-3:1988', 'l3', 'latin3'),
    ('ISO-8859-4', 'iso8859_4'): _isoLabels(4, 'csisolatin4', 'iso-ir-110', 'iso_8859-4:1988', 'l4', 'latin4'),
    ('ISO-8859-5', 'iso8859_5'): _isoLabels(5, 'csisolatincyrillic', 'cyrillic', 'iso-ir-144', 'iso_8859-5:1988'),
    ('ISO-8859-6', 'iso8859_6'): _isoLabels(
        6, 'arabic', 'asmo-708', 'csiso88596e', 'csiso88596i', 'csisolatinarabic', 'ecma-114', 'iso-8859-6-e',
        'iso-8859-6-i', 'iso-ir-127', 'iso_8859-6:1987'
    ),
    ('ISO-8859-7', 'iso8859_7'): _isoLabels(
        7, 'csisolatingreek', 'ecma-118', 'elot_928', 'greek', 'greek8', 'iso-ir-126', 'iso_8859-7:1987',
        'sun_eu_greek'
    ),
    ('ISO-8859-8', 'iso8859_8'): _isoLabels(
        8, 'csiso88598e', 'csisolatinhebrew', 'hebrew', 'iso-8859-8-e', 'iso-ir-138', 'iso_8859-8:1988', 'visual',
        'csiso88598i', 'iso-8859-8-i', 'logical'
    ),
    ('ISO-8859-10', 'iso8859_10'): _isoLabels(10, 'csisolatin6', 'iso-ir-157', 'l6', 'latin6'),
    ('ISO-8859-13', 'iso8859_13'): _isoLabels(13),
    ('ISO-8859-14', 'iso8859_14'): _isoLabels(14),
    ('ISO-8859-15', 'iso8859_15'): _isoLabels(15, 'csisolatin9', 'l9'),
    ('ISO-8859-16', 'iso8859_16'): _isoLabels(16),
    ('KOI8-R', 'koi8_r'): ('cskoi8r', 'koi', 'koi8', 'koi8-r', 'koi8_r'),
    ('KOI8-U', 'koi8_u'): ('koi8-ru', 'koi8-u'),
    ('macintosh', 'mac_roman'): ('csmacintosh', 'mac', 'macintosh', 'x-mac-roman'),
    ('x-mac-cyrillic', 'mac_cyrillic'): ('x-mac-cyrillic', 'x-mac-ukrainian'),
    ('windows-874', 'cp874'): ('dos-874', 'iso-8859-11', 'iso8859-11', 'iso885911', 'tis-620', 'windows-874'),
    ('windows-1250', 'cp1250'): ('cp1250', 'windows-1250', 'x-cp1250'),
    ('windows-1251', 'cp1251'): ('cp1251', 'windows-1251', 'x-cp1251'),
    ('windows-1252', 'cp1252'): (
        'ansi_x3.4-1968', 'ascii', 'cp1252', 'cp819', 'csisolatin1', 'ibm819', 'iso-8859-1', 'iso-ir-100',
        'iso8859-1', 'iso88591', 'iso_8859-1', 'iso_8859-1:1987', 'l1', 'latin1', 'us-ascii', 'windows-1252',
        'x-cp1252'
    ),
    ('windows-1253', 'cp1253'): ('cp1253', 'windows-1253', 'x-cp1253'),
    ('windows-1254', 'cp1254'): (
        'cp1254', 'csisolatin5', 'iso-8859-9', 'iso-ir-148', 'iso8859-9', 'iso88599', 'iso_8859-9',
        'iso_8859-9:1989', 'l5', 'latin5', 'windows-1254', 'x-cp1254'
    ),
    ('windows-1255', 'cp1255'): ('cp1255', 'windows-1255', 'x-cp1255'),
    ('windows-1256', 'cp1256'): ('cp1256', 'windows-1256', 'x-cp1256'),
    ('windows-1257', 'cp1257'): ('cp1257', 'windows-1257', 'x-cp1257'),
    ('windows-1258', 'cp1258'): ('cp1258', 'windows-1258', 'x-cp1258'),
    ('GBK', 'gb18030'): (
        'chinese', 'csgb2312', 'csiso58gb231280', 'gb2312', 'gb_2312', 'gb_2312-80', 'gbk', 'iso-ir-58', 'x-gbk'
    ),
    ('gb18030', 'gb18030'): ('gb18030', ),
    ('Big5', 'big5hkscs'): ('big5', 'big5-hkscs', 'cn-big5', 'csbig5', 'x-x-big5'),
    ('EUC-JP', 'euc_jp'): ('cseucpkdfmtjapanese', 'euc-jp', 'x-euc-jp'),
    ('ISO-2022-JP', 'iso2022_jp'): ('csiso2022jp', 'iso-2022-jp'),
    ('Shift_JIS', 'cp932'): (
        'csshiftjis', 'ms932', 'ms_kanji', 'shift-jis', 'shift_jis', 'sjis', 'windows-31j', 'x-sjis'
    ),
    ('EUC-KR', 'cp949'): (
        'cseuckr', 'csksc56011987', 'euc-kr', 'iso-ir-149', 'korean', 'ks_c_5601-1987', 'ks_c_5601-1989',
        'ksc5601', 'ksc_5601', 'windows-949'
    ),
    ('UTF-16BE', 'utf-16-be'): ('unicodefffe', 'utf-16be'),
    ('UTF-16LE', 'utf-16-le'): (
        'csunicode', 'iso-10646-ucs-2', 'ucs-2', 'unicode', 'unicodefeff', 'utf-16', 'utf-16le'
    ),
}

WHATWG_LABELS = {label: encoding for encoding, labels in _ENCODING_LABELS.items() for label in labels}

# Windows code page number -> (encoding name, Python codec)
WINDOWS_CODE_PAGES = {
    874: ('windows-874', 'cp874'),
    932: ('Shift_JIS', 'cp932'),
    936: ('GBK', 'gb18030'),
    949: ('EUC-KR', 'cp949'),
    950: ('Big5', 'big5hkscs'),
    1200: ('UTF-16LE', 'utf-16-le'),
    1201: ('UTF-16BE', 'utf-16-be'),
    10000: ('macintosh', 'mac_roman'),
    10007: ('x-mac-cyrillic', 'mac_cyrillic'),
    20866: ('KOI8-R', 'koi8_r'),
    21866: ('KOI8-U', 'koi8_u'),
    50220: ('ISO-2022-JP', 'iso2022_jp'),
    51932: ('EUC-JP', 'euc_jp'),
    54936: ('gb18030', 'gb18030'),
    **{page: (f'windows-{page}', f'cp{page}') for page in range(1250, 1259)},
    **{28590 + part: (f'ISO-8859-{part}', f'iso8859_{part}') for part in (2, 3, 4, 5, 6, 7, 8, 10, 13, 14, 15, 16)},
}

# Language -> OEM code page, for languages without script/territory variants
LANGUAGE_OEM_CODE_PAGES = {
    'ja': 932,
    'ko': 949,
    'th': 874,
    'vi': 1258,
    'el': 737,
    'he': 862,
    'is': 861,
    **dict.fromkeys(('ru', 'uk', 'be', 'bg', 'mk', 'kk', 'ky', 'tt', 'mn', 'ba', 'sah'), 866),
    **dict.fromkeys(('tr', 'az'), 857),
    **dict.fromkeys(('ar', 'fa', 'ur', 'ps'), 720),
    **dict.fromkeys(('lt', 'lv', 'et'), 775),
    **dict.fromkeys(('cs', 'sk', 'pl', 'hu', 'sl', 'hr', 'ro', 'bs', 'sq'), 852),
    **dict.fromkeys(
        (
            'de', 'fr', 'es', 'it', 'pt', 'nl', 'da', 'sv', 'no', 'nb', 'nn', 'fi', 'ca', 'eu', 'gl', 'ga', 'af', 'id',
            'ms', 'lb', 'fo', 'br', 'cy', 'rm', 'fy'
        ),
        850,
    ),
}


def oemCodePageForLocale(babelLocale) -> Optional[int]:
    """
    Map a babel Locale to the OEM code page Windows assigns to it.

    Returns:
        int or None when the language has no known OEM code page
    """
    language = babelLocale.language
    territory = babelLocale.territory

    if language == 'zh':
        if babelLocale.script == 'Hant' or territory in ('TW', 'HK', 'MO'):
            return 950
        return 936

    if language == 'en':
        return 437 if territory in (None, 'US') else 850

    if language == 'sr':
        return 852 if babelLocale.script == 'Latn' else 855

    return LANGUAGE_OEM_CODE_PAGES.get(language)


def decideDecoder(decoders: Sequence[Decoder], subjects: Sequence[bytes]) -> Optional[int]:
    """
    Pick the first decoder able to decode every subject losslessly.

    Args:
        decoders: Candidates, the smaller the index the higher the priority
        subjects: Raw byte strings (file names and comments)

    Returns:
        int or None: Index into decoders, None if no decoder accepts all subjects
    """
    for index, decoder in enumerate(decoders):
        if all(decoder.canDecode(subject) for subject in subjects):
            logger.debug(f"{decoder} decodes all {len(subjects)} names and comments")
            return index

    return None


def buildDecoderCandidates(legacyDecoder: Decoder, preferUtf8: bool = False) -> List[Decoder]:
    """
    Order the decoders tried for implicit names: ASCII, then the legacy encoding and UTF-8.

    Args:
        legacyDecoder: Encoding the archive was presumably written in
        preferUtf8: Try UTF-8 before the legacy encoding

    Returns:
        list: Candidates without duplicates
    """
    if preferUtf8:
        ordered = [ASCII_DECODER, UTF8_DECODER, legacyDecoder]
    else:
        ordered = [ASCII_DECODER, legacyDecoder, UTF8_DECODER]

    candidates = []
    for decoder in ordered:
        if decoder not in candidates:
            candidates.append(decoder)

    return candidates
