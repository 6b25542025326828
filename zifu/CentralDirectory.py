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

import struct

from zifu.Kernel import getLogger
from zifu.Errors import InvalidArchiveError, UnsupportedArchiveError
from zifu.Utils import formatSize, readExactly
from zifu.EOCD import ZIP64_U32

logger = getLogger(__name__)

CD_MAGIC = b'PK\x01\x02'

# made by, needed, flags, method, time, date, crc, compressed, uncompressed,
# name length, extra length, comment length, disk start, internal attr, external attr, local header offset
CD_STRUCT = struct.Struct('<HHHHHHIIIHHHHHII')
CD_FIXED_SIZE = len(CD_MAGIC) + CD_STRUCT.size # 46

# General purpose bit flags
ENCRYPTED_FLAG = 0x0001
DATA_DESCRIPTOR_FLAG = 0x0008
UTF8_FLAG = 0x0800

MAX_VARIABLE_FIELD_LENGTH = 0xFFFF


def checkVariableFieldLength(value, what):
    if len(value) > MAX_VARIABLE_FIELD_LENGTH:
        raise ValueError(f'{what} is {len(value)} bytes long, at most {MAX_VARIABLE_FIELD_LENGTH} fit in a ZIP header')


class ZipCDEntry:
    """
    One central directory entry.

    Name, extra field and comment lengths are derived from the raw bytes, use
    setFileName() and setFileComment() to change them.
    """

    def __init__(
        self,
        versionMadeBy=20,
        versionNeededToExtract=20,
        generalPurposeFlag=0,
        compressionMethod=0,
        lastModFileTime=0,
        lastModFileDate=0,
        crc32=0,
        compressedSize=0,
        uncompressedSize=0,
        diskNumberStart=0,
        internalFileAttributes=0,
        externalFileAttributes=0,
        localHeaderPosition=0,
        fileNameRaw=b'',
        extraField=b'',
        fileComment=b'',
        startingPositionWithSignature=0,
    ):
        self.versionMadeBy = versionMadeBy
        self.versionNeededToExtract = versionNeededToExtract
        self.generalPurposeFlag = generalPurposeFlag
        self.compressionMethod = compressionMethod
        self.lastModFileTime = lastModFileTime
        self.lastModFileDate = lastModFileDate
        self.crc32 = crc32
        self.compressedSize = compressedSize
        self.uncompressedSize = uncompressedSize
        self.diskNumberStart = diskNumberStart
        self.internalFileAttributes = internalFileAttributes
        self.externalFileAttributes = externalFileAttributes
        self.localHeaderPosition = localHeaderPosition
        self.startingPositionWithSignature = startingPositionWithSignature

        self.fileNameRaw = b''
        self.fileComment = b''
        self.setFileName(fileNameRaw)
        self.setFileComment(fileComment)
        checkVariableFieldLength(extraField, 'extra field')
        self.extraField = bytes(extraField)

    @property
    def fileNameLength(self):
        return len(self.fileNameRaw)

    @property
    def extraFieldLength(self):
        return len(self.extraField)

    @property
    def fileCommentLength(self):
        return len(self.fileComment)

    @property
    def startingPositionWithoutSignature(self):
        return self.startingPositionWithSignature + len(CD_MAGIC)

    @property
    def size(self):
        """Serialized size of this entry."""
        return CD_FIXED_SIZE + self.fileNameLength + self.extraFieldLength + self.fileCommentLength

    @classmethod
    def allFromEOCD(cls, stream, eocd):
        """
        Parse the whole central directory an EOCD record points to.

        Args:
            stream: Seekable binary file object
            eocd: ZipEOCD of the same stream

        Returns:
            list: ZipCDEntry objects in directory order

        Raises:
            InvalidArchiveError: Missing signature or truncated entry
            UnsupportedArchiveError: Split, ZIP64 or encrypted entry, or a directory that does not end
                                     where the end of central directory record starts
        """
        stream.seek(eocd.cdStartingPosition)

        entries = [cls.fromReader(stream) for _ in range(eocd.nCdEntries)]

        endPosition = stream.tell()
        if endPosition > eocd.startingPositionWithSignature:
            overlapSize = endPosition - eocd.startingPositionWithSignature
            raise UnsupportedArchiveError(
                f'central directory overlaps end of central directory by {formatSize(overlapSize)}',
                eocd.startingPositionWithSignature,
            )

        if endPosition < eocd.startingPositionWithSignature:
            extraSize = eocd.startingPositionWithSignature - endPosition
            raise UnsupportedArchiveError(
                f'there are extra data ({formatSize(extraSize)}) between central directory and '
                f'end of central directory',
                endPosition,
            )

        logger.debug(f'Parsed {len(entries)} central directory entries')
        return entries

    @classmethod
    def fromReader(cls, stream):
        """
        Parse one entry at the current stream position.

        Returns:
            ZipCDEntry

        Raises:
            InvalidArchiveError: Missing signature or truncated entry
            UnsupportedArchiveError: Split archive, ZIP64 sizes or offset, or encrypted entry
        """
        position = stream.tell()

        magic = readExactly(stream, len(CD_MAGIC), 'central directory signature')
        if magic != CD_MAGIC:
            raise InvalidArchiveError('central directory signature (PK\\x01\\x02) was not found', position)

        (
            versionMadeBy,
            versionNeededToExtract,
            generalPurposeFlag,
            compressionMethod,
            lastModFileTime,
            lastModFileDate,
            crc32,
            compressedSize,
            uncompressedSize,
            fileNameLength,
            extraFieldLength,
            fileCommentLength,
            diskNumberStart,
            internalFileAttributes,
            externalFileAttributes,
            localHeaderPosition,
        ) = CD_STRUCT.unpack(readExactly(stream, CD_STRUCT.size, 'central directory entry'))

        entry = cls(
            versionMadeBy=versionMadeBy,
            versionNeededToExtract=versionNeededToExtract,
            generalPurposeFlag=generalPurposeFlag,
            compressionMethod=compressionMethod,
            lastModFileTime=lastModFileTime,
            lastModFileDate=lastModFileDate,
            crc32=crc32,
            compressedSize=compressedSize,
            uncompressedSize=uncompressedSize,
            diskNumberStart=diskNumberStart,
            internalFileAttributes=internalFileAttributes,
            externalFileAttributes=externalFileAttributes,
            localHeaderPosition=localHeaderPosition,
            startingPositionWithSignature=position,
        )
        entry.checkUnsupported()

        entry.setFileName(readExactly(stream, fileNameLength, 'file name'))
        entry.extraField = readExactly(stream, extraFieldLength, 'extra field')
        entry.setFileComment(readExactly(stream, fileCommentLength, 'file comment'))

        return entry

    def checkUnsupported(self):
        """
        Raises:
            UnsupportedArchiveError: Entry lives on another disk, needs ZIP64 or is encrypted
        """
        if self.diskNumberStart != 0:
            raise UnsupportedArchiveError(
                'split (multi-disk) archives are not supported', self.startingPositionWithSignature
            )

        if self.isZip64():
            raise UnsupportedArchiveError('ZIP64 archives are not supported', self.startingPositionWithSignature)

        if self.isEncryptedData():
            raise UnsupportedArchiveError('encrypted entries are not supported', self.startingPositionWithSignature)

    def setFileName(self, fileNameRaw):
        checkVariableFieldLength(fileNameRaw, 'file name')
        self.fileNameRaw = bytes(fileNameRaw)

    def setFileComment(self, fileComment):
        checkVariableFieldLength(fileComment, 'file comment')
        self.fileComment = bytes(fileComment)

    def isEncodedInUtf8(self):
        return bool(self.generalPurposeFlag & UTF8_FLAG)

    def setUtf8EncodedFlag(self):
        self.generalPurposeFlag |= UTF8_FLAG

    def isZip64(self):
        """True if a size or offset holds the sentinel that defers to a ZIP64 extra field."""
        return ZIP64_U32 in (self.compressedSize, self.uncompressedSize, self.localHeaderPosition)

    def isEncryptedData(self):
        return bool(self.generalPurposeFlag & ENCRYPTED_FLAG)

    def hasDataDescriptor(self):
        return bool(self.generalPurposeFlag & DATA_DESCRIPTOR_FLAG)

    def write(self, sink):
        """
        Serialize the entry.

        Returns:
            int: Number of bytes written (46 + name + extra field + comment)
        """
        data = CD_MAGIC + CD_STRUCT.pack(
            self.versionMadeBy,
            self.versionNeededToExtract,
            self.generalPurposeFlag,
            self.compressionMethod,
            self.lastModFileTime,
            self.lastModFileDate,
            self.crc32,
            self.compressedSize,
            self.uncompressedSize,
            self.fileNameLength,
            self.extraFieldLength,
            self.fileCommentLength,
            self.diskNumberStart,
            self.internalFileAttributes,
            self.externalFileAttributes,
            self.localHeaderPosition,
        ) + self.fileNameRaw + self.extraField + self.fileComment
        sink.write(data)
        return len(data)
