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
Shareable location encoding for calendar view state.

The view state is carried in query parameters:

    view     one of month, week, day, agenda
    date     calendar date as YYYY-MM-DD
    filters  base64 of the compact JSON filter object, omitted when empty

Other parts of the location (path, unrelated parameters, fragment) are
preserved when the location is rebuilt.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from config.constants import (
    LOCATION_PARAM_DATE,
    LOCATION_PARAM_FILTERS,
    LOCATION_PARAM_VIEW,
)
from core.view_state.exceptions import FilterDecodeError
from core.view_state.models import ViewState

_MANAGED_PARAMS = (LOCATION_PARAM_VIEW, LOCATION_PARAM_DATE, LOCATION_PARAM_FILTERS)


@dataclass(frozen=True)
class LocationParams:
    """Raw view state parameters found in a location."""

    view: Optional[str] = None
    date: Optional[str] = None
    filters: Optional[str] = None


def parse_location(url: str) -> LocationParams:
    """Extract the view state parameters from a location."""
    values: Dict[str, str] = {}
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key in _MANAGED_PARAMS and key not in values and value:
            values[key] = value
    return LocationParams(
        view=values.get(LOCATION_PARAM_VIEW),
        date=values.get(LOCATION_PARAM_DATE),
        filters=values.get(LOCATION_PARAM_FILTERS),
    )


def encode_filters(filters: Mapping[str, Any]) -> str:
    """Encode a filter object as reversible text."""
    payload = json.dumps(filters, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_filters(payload: str) -> Dict[str, Any]:
    """
    Decode a filter payload produced by encode_filters.

    Raises:
        FilterDecodeError: If the payload is not base64 JSON of an object
    """
    # A literal '+' may have been turned into a space by form decoding
    text = payload.strip().replace(" ", "+")
    try:
        raw = base64.b64decode(text, validate=True)
        filters = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        # UnicodeDecodeError and JSONDecodeError are ValueErrors
        raise FilterDecodeError(payload, str(e)) from e

    if not isinstance(filters, dict):
        raise FilterDecodeError(payload, f"expected an object, got {type(filters).__name__}")
    return filters


def build_location(url: str, state: ViewState, include_filters: bool) -> str:
    """
    Rebuild a location so that it encodes the given view state.

    Existing view state parameters are updated in place; missing ones are
    appended. The filters parameter is removed when filters are excluded
    or empty.

    Args:
        url: Current location
        state: View state to encode
        include_filters: Whether filters may be shared in the location

    Returns:
        The rebuilt location
    """
    wanted: Dict[str, str] = {
        LOCATION_PARAM_VIEW: state.view_mode.value,
        LOCATION_PARAM_DATE: state.focused_date.isoformat(),
    }
    if include_filters and state.active_filters:
        wanted[LOCATION_PARAM_FILTERS] = encode_filters(state.active_filters)

    parts = urlsplit(url)
    params: List[Tuple[str, str]] = []
    written = set()

    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key not in _MANAGED_PARAMS:
            params.append((key, value))
        elif key in wanted and key not in written:
            params.append((key, wanted[key]))
            written.add(key)

    for key in _MANAGED_PARAMS:
        if key in wanted and key not in written:
            params.append((key, wanted[key]))

    return urlunsplit(parts._replace(query=urlencode(params)))
