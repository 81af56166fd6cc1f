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

import argparse
import datetime
import functools
import io
import itertools
import logging
import time
from typing import Iterable, Iterator, List, Optional, Tuple

import xopen

from ._address import ip_to_octets, octets_to_ip
from ._tree import AddressNotFound, CIDRTree, Edge, Node

__all__ = [
    "AddressNotFound",
    "CIDRTree",
    "Edge",
    "Node",
    "build_tree",
    "classify",
    "ip_to_octets",
    "octets_to_ip",
    "read_addresses",
    "read_blocks",
]

DEFAULT_KEY_LENGTH = 4
DEFAULT_NOT_FOUND_LABEL = "NotFound"
DEFAULT_OUTPUT = "-"

text_opener = functools.partial(xopen.xopen, mode="rt", threads=0)


class Timer:
    """Simple timer object to reduce timing boilerplate"""
    def __init__(self):
        self.start_time = time.time()

    def get_difference(self) -> datetime.timedelta:
        current_time = time.time()
        delta = datetime.timedelta(seconds=round(current_time - self.start_time))
        self.start_time = current_time
        return delta


def _content_lines(filename: str) -> Iterator[Tuple[int, str]]:
    """Yield line number and stripped line, skipping blanks and comments."""
    with text_opener(filename) as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            yield line_number, line


def read_blocks(filename: str) -> Iterator[Tuple[bytes, str]]:
    """
    Read ``ADDRESS LABEL`` lines from a (compressed) text file. The label is
    everything after the first run of whitespace.
    """
    for line_number, line in _content_lines(filename):
        parts = line.split(maxsplit=1)
        if len(parts) != 2:
            raise ValueError(f"{filename}:{line_number}: expected an address "
                             f"and a label, got {line!r}")
        address, label = parts
        try:
            octets = ip_to_octets(address)
        except ValueError as error:
            raise ValueError(f"{filename}:{line_number}: {error}") from error
        yield octets, label


def read_addresses(filename: str) -> Iterator[str]:
    for _, line in _content_lines(filename):
        yield line


def build_tree(blocks: Iterable[Tuple[bytes, str]],
               key_length: int = DEFAULT_KEY_LENGTH) -> CIDRTree:
    tree = CIDRTree(key_length)
    for address, label in blocks:
        tree.insert(address, label)
    return tree


def classify(tree: CIDRTree, addresses: Iterable[str]
             ) -> Iterator[Tuple[str, Optional[str]]]:
    """Yield each address with the label of its block, or None when no
    block applies. Addresses that can not be parsed belong to no block."""
    logger = logging.getLogger("cidrtree")
    for address in addresses:
        try:
            octets = ip_to_octets(address)
        except ValueError as error:
            logger.warning(str(error))
            yield address, None
            continue
        yield address, tree.get(octets)


def tree_stats(tree: CIDRTree) -> str:
    outbuffer = io.StringIO()
    outbuffer.write(f"{'depth':>10}{'nodes':>10}{'edges':>10}\n")
    total_nodes = 0
    total_edges = 0
    for depth, (nodes, edges) in enumerate(tree.raw_stats()):
        total_nodes += nodes
        total_edges += edges
        outbuffer.write(f"{depth:10}{nodes:10}{edges:10}\n")
    outbuffer.write(f"{'total':>10}{total_nodes:10}{total_edges:10}\n")
    return outbuffer.getvalue()


def initiate_logger(verbose: int = 0, quiet: int = 0):
    log_level = logging.INFO - 10 * (verbose - quiet)
    logger = logging.getLogger("cidrtree")
    logger.setLevel(log_level)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    formatter = logging.Formatter(
        "{asctime}:{levelname}:{name}: {message}",
        datefmt="%m/%d/%Y %I:%M:%S",
        style="{")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Classify IPv4 addresses by the closest known block.")
    parser.add_argument(
        "blocks", metavar="BLOCKS",
        help="File with one 'ADDRESS LABEL' line per block. May be "
             "compressed.")
    parser.add_argument(
        "addresses", metavar="ADDRESS", nargs="*",
        help="Addresses to classify. When neither addresses nor --input are "
             "given, addresses are read from stdin.")
    parser.add_argument(
        "-i", "--input", action="append", default=[],
        help="File with one address per line. Can be specified multiple "
             "times.")
    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT,
                        help=f"Output file. A .gz suffix compresses the "
                             f"output. Default: '{DEFAULT_OUTPUT}' (stdout)")
    parser.add_argument("-n", "--not-found", default=DEFAULT_NOT_FOUND_LABEL,
                        help=f"Text written for addresses that do not belong "
                             f"to any block. "
                             f"Default: '{DEFAULT_NOT_FOUND_LABEL}'")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log verbosity.")
    parser.add_argument("-q", "--quiet", action="count", default=0,
                        help="Reduce log verbosity.")
    return parser


def main(args: Optional[List[str]] = None):
    parsed = argument_parser().parse_args(args)
    initiate_logger(parsed.verbose, parsed.quiet)
    logger = logging.getLogger("cidrtree")

    timer = Timer()
    logger.info(f"Block file: {parsed.blocks}")
    logger.info(f"Output file: {parsed.output}")
    blocks = list(read_blocks(parsed.blocks))
    tree = build_tree(blocks)
    logger.info(f"Loaded {len(blocks)} blocks into "
                f"{tree.number_of_nodes} nodes. ({timer.get_difference()})")
    if logger.getEffectiveLevel() <= logging.DEBUG:
        # Do not walk the whole tree when the stats are not shown.
        logger.debug("\n" + tree_stats(tree))

    address_sources: List[Iterable[str]] = [parsed.addresses]
    address_sources.extend(read_addresses(f) for f in parsed.input)
    if not parsed.addresses and not parsed.input:
        address_sources.append(read_addresses("-"))
    addresses = itertools.chain.from_iterable(address_sources)

    found = 0
    not_found = 0
    with xopen.xopen(parsed.output, mode="wt", compresslevel=1,
                     threads=0) as output:
        for address, label in classify(tree, addresses):
            if label is None:
                not_found += 1
                label = parsed.not_found
            else:
                found += 1
            output.write(f"{address}\t{label}\n")
    logger.info(f"Classified {found + not_found} addresses: {found} matched "
                f"a block, {not_found} did not. ({timer.get_difference()})")


if __name__ == "__main__":
    main()
