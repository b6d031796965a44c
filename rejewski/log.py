#!/usr/bin/env python3
"""
Print and logging stuff is here.
"""
import sys
import threading

"""
Colors
"""
COLOR_NONE        = '\033[00m'
COLOR_BOLD        = '\033[01m'

COLOR_DARK_GREY   = '\033[90m'
COLOR_RED         = '\033[91m'
COLOR_GREEN       = '\033[92m'
COLOR_YELLOW      = '\033[93m'
COLOR_BLUE        = '\033[94m'

loglock = threading.Lock()

"""
Thread-safe print
"""
def tprint(string='', color=COLOR_NONE, new_line=True, stdout=True, file=None):
    line = color + string + COLOR_NONE
    if stdout:
        with loglock:
            print(line, end=('\n' if new_line else ''), file=file)
    return line


def newline(stdout=True, file=None):
    if stdout:
        with loglock:
            print('', file=file)
    return ''

"""
OK, INFO, WARN, ERR
"""
def show_marked(c, color='', *args, new_line=True, stdout=True, file=None, offset=0):
    start = '%s%s%s%s%s' % (color, COLOR_BOLD, c, COLOR_NONE, ' ' * offset)
    if stdout:
        with loglock:
            print(start, *args, end=('\n' if new_line else ''), file=file)
        return None
    return start + ' ' + ' '.join(str(a) for a in args)


def ok(*args, new_line=True, stdout=True, file=None, offset=0):
    return show_marked('[+]', COLOR_GREEN, *args, new_line=new_line,
                       stdout=stdout, file=file, offset=offset)

def info(*args, new_line=True, stdout=True, file=None, offset=0):
    return show_marked('[.]', COLOR_BLUE, *args, new_line=new_line,
                       stdout=stdout, file=file or sys.stderr, offset=offset)

def warn(*args, new_line=True, stdout=True, file=None, offset=0):
    return show_marked('[!]', COLOR_YELLOW, *args, new_line=new_line,
                       stdout=stdout, file=file or sys.stderr, offset=offset)

def err(*args, new_line=True, stdout=True, file=None, offset=0):
    return show_marked('[-]', COLOR_RED, *args, new_line=new_line,
                       stdout=stdout, file=file or sys.stderr, offset=offset)
