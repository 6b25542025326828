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
from zifu.Errors import InvalidArchiveError
from zifu.Utils import readExactly
from zifu.CentralDirectory import DATA_DESCRIPTOR_FLAG, UTF8_FLAG, checkVariableFieldLength

logger = getLogger(__name__)

LFH_MAGIC = b'PK\x03\x04'

# needed, flags, method, time, date, crc, compressed, uncompressed, name length, extra length
LFH_STRUCT = struct.Struct('<HHHHHIIIHH')
LFH_FIXED_SIZE = len(LFH_MAGIC) + LFH_STRUCT.size # 30

DATA_DESCRIPTOR_MAGIC = b'PK\x07\x08'
DATA_DESCRIPTOR_SIGNATURE = 0x08074B50
DATA_DESCRIPTOR_STRUCT = struct.Struct('<III')


class ZipDataDescriptor:
    """CRC-32 and sizes written after the payload of streamed entries, optionally signed."""

    def __init__(self, crc32=0, compressedSize=0, uncompressedSize=0, hasSignature=True):
        self.crc32 = crc32
        self.compressedSize = compressedSize
        self.uncompressedSize = uncompressedSize
        self.hasSignature = hasSignature

    @property
    def size(self):
        return DATA_DESCRIPTOR_STRUCT.size + (len(DATA_DESCRIPTOR_MAGIC) if self.hasSignature else 0)

    @classmethod
    def fromReader(cls, stream, expectedCrc32):
        """
        Parse a data descriptor at the current stream position.

        The PK\\x07\\x08 signature is optional, its presence is assumed when the first word
        matches it and the entry's CRC-32 does not.

        Args:
            stream: Seekable binary file object
            expectedCrc32: CRC-32 from the central directory entry
        """
        firstWord = readExactly(stream, 4, 'data descriptor')
        hasSignature = firstWord == DATA_DESCRIPTOR_MAGIC and expectedCrc32 != DATA_DESCRIPTOR_SIGNATURE

        if hasSignature:
            fields = readExactly(stream, DATA_DESCRIPTOR_STRUCT.size, 'data descriptor')
        else:
            fields = firstWord + readExactly(stream, DATA_DESCRIPTOR_STRUCT.size - 4, 'data descriptor')

        crc32, compressedSize, uncompressedSize = DATA_DESCRIPTOR_STRUCT.unpack(fields)
        return cls(crc32, compressedSize, uncompressedSize, hasSignature)

    def write(self, sink):
        data = DATA_DESCRIPTOR_STRUCT.pack(self.crc32, self.compressedSize, self.uncompressedSize)
        if self.hasSignature:
            data = DATA_DESCRIPTOR_MAGIC + data
        sink.write(data)
        return len(data)


class ZipLocalFileHeader:
    """
    Local file header with the compressed payload that follows it.

    The payload is kept as read, it is never decompressed.
    """

    def __init__(
        self,
        versionNeededToExtract=20,
        generalPurposeFlag=0,
        compressionMethod=0,
        lastModFileTime=0,
        lastModFileDate=0,
        crc32=0,
        compressedSize=0,
        uncompressedSize=0,
        fileNameRaw=b'',
        extraField=b'',
        compressedData=b'',
        dataDescriptor=None,
        startingPositionWithSignature=0,
    ):
        self.versionNeededToExtract = versionNeededToExtract
        self.generalPurposeFlag = generalPurposeFlag
        self.compressionMethod = compressionMethod
        self.lastModFileTime = lastModFileTime
        self.lastModFileDate = lastModFileDate
        self.crc32 = crc32
        self.compressedSize = compressedSize
        self.uncompressedSize = uncompressedSize
        self.fileNameRaw = b''
        self.setFileName(fileNameRaw)
        self.extraField = bytes(extraField)
        self.compressedData = compressedData
        self.dataDescriptor = dataDescriptor
        self.startingPositionWithSignature = startingPositionWithSignature

    @property
    def fileNameLength(self):
        return len(self.fileNameRaw)

    @property
    def extraFieldLength(self):
        return len(self.extraField)

    @property
    def size(self):
        """Serialized size of header, payload and data descriptor."""
        descriptorSize = self.dataDescriptor.size if self.dataDescriptor else 0
        return LFH_FIXED_SIZE + self.fileNameLength + self.extraFieldLength + len(self.compressedData) + descriptorSize

    @classmethod
    def fromCentralDirectory(cls, stream, cdEntry):
        """
        Read the local file header a central directory entry points to.

        The payload length is taken from the central directory, streamed entries carry
        zero sizes in their local header.

        Args:
            stream: Seekable binary file object
            cdEntry: ZipCDEntry of the same stream

        Returns:
            ZipLocalFileHeader

        Raises:
            InvalidArchiveError: Missing signature, truncated header or payload
        """
        position = cdEntry.localHeaderPosition
        stream.seek(position)

        magic = readExactly(stream, len(LFH_MAGIC), 'local file header signature')
        if magic != LFH_MAGIC:
            raise InvalidArchiveError('local file header signature (PK\\x03\\x04) was not found', position)

        (
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
        ) = LFH_STRUCT.unpack(readExactly(stream, LFH_STRUCT.size, 'local file header'))

        fileNameRaw = readExactly(stream, fileNameLength, 'local file name')
        extraField = readExactly(stream, extraFieldLength, 'local extra field')
        compressedData = readExactly(stream, cdEntry.compressedSize, 'compressed data')

        dataDescriptor = None
        if generalPurposeFlag & DATA_DESCRIPTOR_FLAG:
            dataDescriptor = ZipDataDescriptor.fromReader(stream, cdEntry.crc32)

        return cls(
            versionNeededToExtract=versionNeededToExtract,
            generalPurposeFlag=generalPurposeFlag,
            compressionMethod=compressionMethod,
            lastModFileTime=lastModFileTime,
            lastModFileDate=lastModFileDate,
            crc32=crc32,
            compressedSize=compressedSize,
            uncompressedSize=uncompressedSize,
            fileNameRaw=fileNameRaw,
            extraField=extraField,
            compressedData=compressedData,
            dataDescriptor=dataDescriptor,
            startingPositionWithSignature=position,
        )

    def setFileName(self, fileNameRaw):
        checkVariableFieldLength(fileNameRaw, 'file name')
        self.fileNameRaw = bytes(fileNameRaw)

    def isEncodedInUtf8(self):
        return bool(self.generalPurposeFlag & UTF8_FLAG)

    def setUtf8EncodedFlag(self):
        self.generalPurposeFlag |= UTF8_FLAG

    def write(self, sink):
        """
        Serialize header, payload and data descriptor.

        Returns:
            int: Number of bytes written
        """
        header = LFH_MAGIC + LFH_STRUCT.pack(
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
        ) + self.fileNameRaw + self.extraField
        sink.write(header)
        sink.write(self.compressedData)
        written = len(header) + len(self.compressedData)

        if self.dataDescriptor is not None:
            written += self.dataDescriptor.write(sink)

        return written
