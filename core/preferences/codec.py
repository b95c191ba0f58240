# SPDX-License-Identifier: Apache-2.0
#
# Copyright (c) 2024-2025 PrefSync Contributors
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
"""
Import and export of calendar preference bundles.

An exported bundle is the formatted JSON preference tree. The export
timestamp is carried by the bundle and its filename, never by the JSON
content, so importing an exported bundle reproduces the same tree.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from config.constants import (
    EXPORT_FILE_EXTENSION,
    EXPORT_FILENAME_PREFIX,
    EXPORT_MEDIA_TYPE,
)
from core.preferences.exceptions import InvalidFormatError
from utils.time_utils import current_iso_date, now_local

logger = logging.getLogger("prefsync.preferences.codec")


@dataclass(frozen=True)
class PreferenceBundle:
    """Downloadable snapshot of a preference tree."""

    filename: str
    content: str
    exported_at: datetime
    media_type: str = EXPORT_MEDIA_TYPE


def export_filename(now: Optional[datetime] = None) -> str:
    """Return the deterministic export filename for the given moment."""
    return f"{EXPORT_FILENAME_PREFIX}-{current_iso_date(now)}.{EXPORT_FILE_EXTENSION}"


def export_preferences(
    tree: Mapping[str, Any], now: Optional[datetime] = None
) -> PreferenceBundle:
    """
    Serialize a preference tree into a downloadable bundle.

    Args:
        tree: Preference tree to export
        now: Export moment, defaults to the current local time

    Returns:
        PreferenceBundle with formatted JSON content
    """
    moment = now or now_local()
    content = json.dumps(tree, indent=2, ensure_ascii=False)
    bundle = PreferenceBundle(
        filename=export_filename(moment),
        content=content,
        exported_at=moment,
    )
    logger.info(f"Exported preferences as {bundle.filename} ({len(content)} chars)")
    return bundle


def import_preferences(contents: Union[str, bytes]) -> Dict[str, Any]:
    """
    Parse the contents of a preferences file.

    Args:
        contents: File contents as text or UTF-8 bytes

    Returns:
        The imported preference tree

    Raises:
        InvalidFormatError: If the contents are not a JSON object
    """
    if isinstance(contents, (bytes, bytearray)):
        try:
            contents = bytes(contents).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InvalidFormatError("Preferences file is not UTF-8 text") from e

    if not isinstance(contents, str):
        raise InvalidFormatError(
            f"Unsupported preferences contents: {type(contents).__name__}"
        )

    try:
        tree = json.loads(contents)
    except json.JSONDecodeError as e:
        raise InvalidFormatError(f"Invalid preferences file format: {e.msg}") from e

    if not isinstance(tree, dict):
        raise InvalidFormatError(
            f"Preferences file must contain a JSON object, got {type(tree).__name__}"
        )

    return tree


def write_bundle(bundle: PreferenceBundle, directory: Union[str, Path]) -> Path:
    """
    Write a bundle into a directory using its filename.

    Args:
        bundle: Bundle to write
        directory: Target directory, created if missing

    Returns:
        Path of the written file
    """
    target_dir = Path(os.path.expanduser(str(directory)))
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / bundle.filename
    path.write_text(bundle.content, encoding="utf-8")
    logger.info(f"Saved preferences export: {path}")
    return path
