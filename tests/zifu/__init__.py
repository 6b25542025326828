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

# Initialize SettingsGetter with values independent of the host configuration
from zifu.Settings import SettingsGetter

settingsGetter = SettingsGetter(preferUtf8=False, fallbackCodePage=437)
