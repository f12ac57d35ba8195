# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

# ANSI colors for console reports

enabled = True


def _color(code, args):
    s = " ".join(args)
    if not enabled:
        return s
    return "\033[%sm%s\033[0m" % (code, s)


def red(*args):
    return _color("0;31", args)

def lred(*args):
    return _color("1;31", args)

def green(*args):
    return _color("1;32", args)

def bold(*args):
    return _color("1", args)

def dgray(*args):
    return _color("2;37", args)
