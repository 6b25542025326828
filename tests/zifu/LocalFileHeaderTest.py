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

import io
import unittest
import zlib

from zifu.CentralDirectory import UTF8_FLAG, ZipCDEntry
from zifu.EOCD import ZipEOCD
from zifu.Errors import InvalidArchiveError
from zifu.LocalFileHeader import LFH_FIXED_SIZE, ZipDataDescriptor, ZipLocalFileHeader

from tests.ZipTestBase import EntrySpec, ZipTestBase, buildLocalHeader, buildZip


class ZipLocalFileHeaderTest(ZipTestBase):

    def readAll(self, data):
        stream = io.BytesIO(data)
        cdEntries = ZipCDEntry.allFromEOCD(stream, ZipEOCD.fromReader(stream))
        return [ZipLocalFileHeader.fromCentralDirectory(stream, cdEntry) for cdEntry in cdEntries]

    def testRead(self):
        entrySpec = EntrySpec(b'a.txt', b'hello world', extra=b'\x01\x02\x03\x04')
        localHeader, = self.readAll(buildZip([entrySpec]))

        self.assertEqual(localHeader.fileNameRaw, b'a.txt')
        self.assertEqual(localHeader.extraField, b'\x01\x02\x03\x04')
        self.assertEqual(localHeader.compressedData, b'hello world')
        self.assertEqual(localHeader.crc32, zlib.crc32(b'hello world'))
        self.assertEqual(localHeader.compressedSize, 11)
        self.assertIsNone(localHeader.dataDescriptor)
        self.assertEqual(localHeader.size, LFH_FIXED_SIZE + 5 + 4 + 11)

    def testWriteReproducesInput(self):
        entrySpecs = [EntrySpec(b'a.txt', b'hello'), EntrySpec(b'b.txt', b'', comment=b'empty')]
        sink = io.BytesIO()
        written = sum(localHeader.write(sink) for localHeader in self.readAll(buildZip(entrySpecs)))

        expected = b''.join(buildLocalHeader(entrySpec) for entrySpec in entrySpecs)
        self.assertEqual(written, len(expected))
        self.assertEqual(sink.getvalue(), expected)

    def testDataDescriptor(self):
        """Streamed entries keep their zero sizes and their data descriptor, with or without signature."""
        for signature in (True, False):
            with self.subTest(signature=signature):
                entrySpec = EntrySpec(b'stream.bin', b'\x00payload\xff', streamed=True, descriptorSignature=signature)
                localHeader, _ = self.readAll(buildZip([entrySpec, EntrySpec(b'next.txt', b'next')]))

                self.assertEqual(localHeader.compressedSize, 0)
                self.assertEqual(localHeader.compressedData, b'\x00payload\xff')

                descriptor = localHeader.dataDescriptor
                self.assertIsInstance(descriptor, ZipDataDescriptor)
                self.assertEqual(descriptor.hasSignature, signature)
                self.assertEqual(descriptor.crc32, zlib.crc32(b'\x00payload\xff'))
                self.assertEqual(descriptor.compressedSize, 9)
                self.assertEqual(descriptor.uncompressedSize, 9)

                sink = io.BytesIO()
                self.assertEqual(localHeader.write(sink), localHeader.size)
                self.assertEqual(sink.getvalue(), buildLocalHeader(entrySpec))

    def testSetFileName(self):
        localHeader, = self.readAll(buildZip([EntrySpec('テスト.txt'.encode('cp932'), b'hello')]))

        localHeader.setFileName('テスト.txt'.encode('utf-8'))
        localHeader.setUtf8EncodedFlag()
        self.assertEqual(localHeader.fileNameLength, 13)
        self.assertTrue(localHeader.isEncodedInUtf8())
        self.assertEqual(localHeader.generalPurposeFlag & UTF8_FLAG, UTF8_FLAG)

        sink = io.BytesIO()
        self.assertEqual(localHeader.write(sink), LFH_FIXED_SIZE + 13 + 5)
        self.assertEqual(sink.getvalue()[LFH_FIXED_SIZE:LFH_FIXED_SIZE + 13], 'テスト.txt'.encode('utf-8'))

    def testWrongSignature(self):
        stream = io.BytesIO(buildZip([EntrySpec(b'a.txt', b'hello')]))
        cdEntry, = ZipCDEntry.allFromEOCD(stream, ZipEOCD.fromReader(stream))
        cdEntry.localHeaderPosition = 2

        self.assertRaisesWithReason(
            InvalidArchiveError, 'PK\\x03\\x04', ZipLocalFileHeader.fromCentralDirectory, stream, cdEntry
        )

    def testTruncatedPayload(self):
        stream = io.BytesIO(buildZip([EntrySpec(b'a.txt', b'hello')]))
        cdEntry, = ZipCDEntry.allFromEOCD(stream, ZipEOCD.fromReader(stream))
        cdEntry.compressedSize = 1 << 20

        self.assertRaisesWithReason(
            InvalidArchiveError, 'compressed data is truncated', ZipLocalFileHeader.fromCentralDirectory, stream,
            cdEntry
        )


if __name__ == '__main__':
    unittest.main()
