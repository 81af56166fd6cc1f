# Copyright (C) 2022 Leiden University Medical Center
# This file is part of cidrtree
#
# cidrtree is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# cidrtree is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with cidrtree.  If not, see <https://www.gnu.org/licenses/

import ipaddress
from typing import Iterable, Union

Address = Union[str, ipaddress.IPv4Address, bytes, bytearray, Iterable[int]]


def ip_to_octets(address: Address) -> bytes:
    """
    Convert a dotted quad string, an IPv4Address or a sequence of integers
    to packed octets.
    """
    if isinstance(address, str):
        try:
            return ipaddress.IPv4Address(address.strip()).packed
        except ipaddress.AddressValueError as error:
            raise ValueError(
                f"{address!r} is not a valid IPv4 address: {error}") from error
    if isinstance(address, ipaddress.IPv4Address):
        return address.packed
    if isinstance(address, (bytes, bytearray)):
        return bytes(address)
    if isinstance(address, int):
        # bytes(int) would create a zeroed buffer instead.
        raise ValueError(f"{address!r} can not be converted to octets")
    try:
        return bytes(address)
    except (TypeError, ValueError) as error:
        raise ValueError(
            f"{address!r} can not be converted to octets: {error}"
        ) from error


def octets_to_ip(octets: Union[bytes, bytearray, Iterable[int]]) -> str:
    packed = bytes(octets)
    if len(packed) != 4:
        raise ValueError(f"An IPv4 address has 4 octets, got {len(packed)}")
    return str(ipaddress.IPv4Address(packed))
