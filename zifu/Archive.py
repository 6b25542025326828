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

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from zifu.Kernel import getLogger
from zifu.Settings import SettingsGetter
from zifu.I18n import _
from zifu.Errors import NoDecoderMatchError
from zifu.EOCD import ZipEOCD
from zifu.CentralDirectory import ZipCDEntry
from zifu.LocalFileHeader import ZipLocalFileHeader
from zifu.Decoder import ASCII_DECODER, Decoder, buildDecoderCandidates, composeFromHfsNfd, decideDecoder

logger = getLogger(__name__)


def _decodeUtf8Lossy(raw):
    return raw.decode('utf-8', errors='replace')


def _isIrregularUtf8(raw):
    """True if UTF-8 bytes are not in the composed form HFS+ aware NFC produces."""
    text = _decodeUtf8Lossy(raw)
    return composeFromHfsNfd(text) != text


class FileNameEncodingType(Enum):
    EXPLICIT_REGULAR_UTF8 = 1 # bit 11 and NFC
    EXPLICIT_IRREGULAR_UTF8 = 2 # bit 11 and not NFC, e.g. HFS+ NFD from macOS Finder
    IMPLICIT_ASCII = 3 # no bit 11, plain ASCII
    IMPLICIT_NON_ASCII = 4 # no bit 11, CP437, Shift_JIS, or unflagged UTF-8...

    def isUniversal(self):
        """True if almost every unzip tool shows this name correctly."""
        return self in (FileNameEncodingType.EXPLICIT_REGULAR_UTF8, FileNameEncodingType.IMPLICIT_ASCII)


@dataclass
class FileNameEntry:
    name: str
    encodingType: FileNameEncodingType


@dataclass
class FileNamesDiagnosis:
    hasImplicitNonAsciiNames: bool = False
    hasNonNfcExplicitUtf8Names: bool = False

    def isUniversalArchive(self):
        """True if the archive does not need to be rewritten."""
        return not self.hasImplicitNonAsciiNames and not self.hasNonNfcExplicitUtf8Names

    def getStatusPrimaryMessage(self):
        if self.hasImplicitNonAsciiNames and self.hasNonNfcExplicitUtf8Names:
            return _(
                'Some files use irregular unicode normalization and others are encoded implicitly '
                'in a multibyte encoding.'
            )
        if self.hasImplicitNonAsciiNames:
            return _('Some files are encoded implicitly in a multibyte encoding.')
        if self.hasNonNfcExplicitUtf8Names:
            return _('Some file names use irregular unicode normalization.')
        return _('All file names are encoded in ASCII or explicitly in UTF-8.')

    def getStatusNote(self):
        """Follow-up sentence for getStatusPrimaryMessage()."""
        if self.hasImplicitNonAsciiNames:
            return _('Apply this tool, or the receiver may not be able to see the correct file names.')
        if self.hasNonNfcExplicitUtf8Names:
            return _('Apply this tool, or the receiver may not deal with the particular file name normalization.')
        return _('Almost all devices can decode its file names correctly.')


@dataclass
class RepairResult:
    diagnosis: FileNamesDiagnosis
    decoder: Optional[Decoder] = None
    written: bool = False
    bytesWritten: int = 0


class InputZipArchive:
    """
    A ZIP archive opened for name repair.

    Owns the input stream. Entries are parsed once on load; convert() changes the
    in-memory central directory and serialize() writes a complete new archive, copying
    each payload from the input stream untouched.
    """

    def __init__(self, stream, eocd: ZipEOCD, cdEntries: List[ZipCDEntry]):
        self.stream = stream
        self.eocd = eocd
        self.cdEntries = cdEntries

        # Offsets in the input stream, serialize() moves localHeaderPosition to the output's
        self._sourcePositions = [cdEntry.localHeaderPosition for cdEntry in cdEntries]

    @classmethod
    def load(cls, stream):
        """
        Parse EOCD and central directory of a seekable binary stream.

        Raises:
            InvalidArchiveError: The stream is not a well-formed ZIP archive
            UnsupportedArchiveError: ZIP64, split or encrypted archive, or unknown data before the EOCD
        """
        eocd = ZipEOCD.fromReader(stream)
        eocd.checkUnsupportedZipType()
        cdEntries = ZipCDEntry.allFromEOCD(stream, eocd)
        return cls(stream, eocd, cdEntries)

    @classmethod
    def open(cls, path):
        """Open and load the archive at path, the file is closed by close()."""
        stream = open(path, 'rb')
        try:
            return cls.load(stream)
        except BaseException:
            stream.close()
            raise

    def close(self):
        self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, excType, excValue, traceback):
        self.close()

    def rejectUnsupported(self):
        """
        Raises:
            UnsupportedArchiveError: If the archive or any entry cannot be rewritten safely
        """
        self.eocd.checkUnsupportedZipType()
        for cdEntry in self.cdEntries:
            cdEntry.checkUnsupported()

    def diagnose(self) -> FileNamesDiagnosis:
        diagnosis = FileNamesDiagnosis()

        for cdEntry in self.cdEntries:
            if cdEntry.isEncodedInUtf8():
                if _isIrregularUtf8(cdEntry.fileNameRaw) or _isIrregularUtf8(cdEntry.fileComment):
                    diagnosis.hasNonNfcExplicitUtf8Names = True
            elif not cdEntry.fileNameRaw.isascii() or not cdEntry.fileComment.isascii():
                diagnosis.hasImplicitNonAsciiNames = True

        logger.debug(f'Diagnosis: {diagnosis}')
        return diagnosis

    def decideDecoder(self, decoders) -> Optional[int]:
        """
        Index of the first decoder that decodes every file name and comment, None if none does.
        """
        subjects = []
        for cdEntry in self.cdEntries:
            subjects.append(cdEntry.fileNameRaw)
            subjects.append(cdEntry.fileComment)

        return decideDecoder(decoders, subjects)

    def listFileNames(self, legacyDecoder: Decoder) -> List[FileNameEntry]:
        """
        File names as they will look after repair.

        Args:
            legacyDecoder: Decoder for names without the UTF-8 flag
        """
        entries = []
        for cdEntry in self.cdEntries:
            if cdEntry.isEncodedInUtf8():
                originalName = _decodeUtf8Lossy(cdEntry.fileNameRaw)
                composedName = composeFromHfsNfd(originalName)
                encodingType = (
                    FileNameEncodingType.EXPLICIT_REGULAR_UTF8
                    if originalName == composedName else FileNameEncodingType.EXPLICIT_IRREGULAR_UTF8
                )
                entries.append(FileNameEntry(composedName, encodingType))
                continue

            asciiName = ASCII_DECODER.tryDecode(cdEntry.fileNameRaw)
            if asciiName is not None:
                entries.append(FileNameEntry(asciiName, FileNameEncodingType.IMPLICIT_ASCII))
            else:
                entries.append(
                    FileNameEntry(legacyDecoder.decodeLossy(cdEntry.fileNameRaw), FileNameEncodingType.IMPLICIT_NON_ASCII)
                )

        return entries

    def convert(self, legacyDecoder: Decoder):
        """
        Rewrite names and comments in the central directory as NFC UTF-8 and set the UTF-8 flag.

        Entries already flagged as UTF-8 are only recomposed when they are not NFC, so
        converting twice changes nothing the second time.

        Args:
            legacyDecoder: Decoder for entries without the UTF-8 flag
        """
        for cdEntry in self.cdEntries:
            if cdEntry.isEncodedInUtf8():
                if _isIrregularUtf8(cdEntry.fileNameRaw):
                    cdEntry.setFileName(composeFromHfsNfd(_decodeUtf8Lossy(cdEntry.fileNameRaw)).encode('utf-8'))
                if _isIrregularUtf8(cdEntry.fileComment):
                    cdEntry.setFileComment(composeFromHfsNfd(_decodeUtf8Lossy(cdEntry.fileComment)).encode('utf-8'))
                continue

            cdEntry.setFileName(legacyDecoder.decodeLossy(cdEntry.fileNameRaw).encode('utf-8'))
            cdEntry.setFileComment(legacyDecoder.decodeLossy(cdEntry.fileComment).encode('utf-8'))
            cdEntry.setUtf8EncodedFlag()

        logger.debug(f'Converted {len(self.cdEntries)} entries from {legacyDecoder}')

    def serialize(self, sink) -> int:
        """
        Write the whole archive: local headers with payloads, central directory, EOCD.

        A local header takes the central directory name when the two name lengths differ,
        offsets are recomputed from the bytes actually written. The sink must be positioned
        where the archive starts.

        Returns:
            int: Number of bytes written
        """
        position = 0

        for cdEntry, sourcePosition in zip(self.cdEntries, self._sourcePositions):
            cdEntry.localHeaderPosition = sourcePosition
            localHeader = ZipLocalFileHeader.fromCentralDirectory(self.stream, cdEntry)

            if localHeader.fileNameLength != cdEntry.fileNameLength:
                localHeader.setFileName(cdEntry.fileNameRaw)
            if cdEntry.isEncodedInUtf8():
                localHeader.setUtf8EncodedFlag()

            cdEntry.localHeaderPosition = position
            position += localHeader.write(sink)

        cdStartingPosition = position
        for cdEntry in self.cdEntries:
            position += cdEntry.write(sink)

        self.eocd.cdStartingPosition = cdStartingPosition
        self.eocd.cdSize = position - cdStartingPosition
        position += self.eocd.write(sink)

        logger.debug(f'Wrote {len(self.cdEntries)} entries, {position} bytes')
        return position


def repairArchive(source, sink, decoder=None, preferUtf8=None, force=False) -> RepairResult:
    """
    Rewrite the archive in source to sink with UTF-8 file names.

    Args:
        source: Seekable binary stream holding the archive, not closed here
        sink: Writable binary stream for the repaired archive
        decoder: Decoder or encoding label for names without the UTF-8 flag. Defaults to the
                 configured encoding (ZIFU_ENCODING), then the host locale's OEM code page
        preferUtf8: Try UTF-8 before the legacy encoding, defaults to ZIFU_PREFER_UTF8
        force: Rewrite even if every name is already ASCII or NFC UTF-8

    Returns:
        RepairResult: written is False when nothing had to be done

    Raises:
        InvalidArchiveError: Source is not a well-formed ZIP archive
        UnsupportedArchiveError: ZIP64, split or encrypted archive
        NoDecoderMatchError: No candidate encoding decodes all names and comments
        ValueError: decoder is an unknown encoding label
    """
    settings = SettingsGetter.getInstance()

    archive = InputZipArchive.load(source)
    archive.rejectUnsupported()

    diagnosis = archive.diagnose()
    if diagnosis.isUniversalArchive() and not force:
        logger.info(diagnosis.getStatusPrimaryMessage())
        return RepairResult(diagnosis)

    legacyDecoder = _resolveLegacyDecoder(decoder, settings)
    if preferUtf8 is None:
        preferUtf8 = settings.preferUtf8

    candidates = buildDecoderCandidates(legacyDecoder, preferUtf8)
    index = archive.decideDecoder(candidates)
    if index is None:
        raise NoDecoderMatchError(candidate.encodingName for candidate in candidates)

    chosen = candidates[index]
    logger.info(f'Converting file names from {chosen} to UTF-8')

    archive.convert(chosen)
    bytesWritten = archive.serialize(sink)

    return RepairResult(diagnosis, chosen, True, bytesWritten)


def _resolveLegacyDecoder(decoder, settings):
    if isinstance(decoder, Decoder):
        return decoder

    if decoder is not None:
        resolved = Decoder.fromName(decoder)
        if resolved is None:
            raise ValueError(f"Unknown encoding '{decoder}'")
        return resolved

    if settings.encoding:
        resolved = Decoder.fromName(settings.encoding)
        if resolved is not None:
            return resolved
        logger.warning(f"Configured encoding '{settings.encoding}' is unknown, using the host locale")

    return Decoder.nativeDefault()
