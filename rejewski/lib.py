#!/usr/bin/python3
"""
Standard functions, constants and runtime settings.
"""

import os
import sys

from Crypto.Util import number

from rejewski import log

"""
Constants
"""

# space and English letters, most frequent first
letter_ranking = ' etaoinshrdlcumwfgypbvkjxqz'
letter_weights = {c: len(letter_ranking) - i
                  for i, c in enumerate(letter_ranking)}

aes_blocksize = 16
max_blocksize = 64
keysize_range = (2, 40)
prefix_length_range = (5, 15)

"""
Settings (can be altered through environment)
"""
debug_flag = os.environ.get('REJEWSKI_DEBUG', '0') not in ('', '0')
try:
    thread_count = max(1, int(os.environ.get('REJEWSKI_THREADS', '8')))
except ValueError:
    thread_count = 8

"""
Errors
"""
class ArgumentError(ValueError):
    """
    Invalid argument given by the caller (wrong length, empty value...).
    """
    pass


class DataError(ValueError):
    """
    Data does not match attack assumptions (wrong mode, no match...).
    """
    pass


"""
Standard functions
"""
def debug(*args, **kwargs):
    if debug_flag:
        with log.loglock:
            print(log.COLOR_DARK_GREY + '[.]', *args,
                  log.COLOR_NONE, **kwargs, file=sys.stderr)


def chunks(data, chunksize):
    """
    Split data in sequential chunks.
    """
    if chunksize < 1:
        raise ArgumentError('Chunk size must be positive.')
    return [data[i:i+chunksize] for i in range(0, len(data), chunksize)]


def int_to_bytes(x, length=None):
    if length:
        return number.long_to_bytes(x, length)
    return number.long_to_bytes(x) if x else b''


def bytes_to_int(x):
    return number.bytes_to_long(x)
