#! /usr/bin/env python3
"""
Browse and read files in WebDAV, S3-compatible, SSH, SMB, local, or Hugging Face storage.

Execute this script with the -h option to display the list of options.
"""
# unistore [-h] [-c CONFFILE] [-u USER] [-p PASS] [-l LOGFILE] [-v|-q] CMD STORAGE [PATH ...]
import sys, os, logging, traceback as tb
from unistore import cli

prog = os.path.basename(sys.argv[0])
if prog.endswith('.py'):
    prog = prog[:-(len('.py'))]

def err(msg):
    rootlog = logging.getLogger()
    if rootlog.handlers:
        rootlog.error(msg)
    else:
        if prog:
            sys.stderr.write(prog)
            sys.stderr.write(": ")
        sys.stderr.write(msg)
        sys.stderr.write("\n")

try:

    cli.main(prog, sys.argv[1:])

except cli.Failure as ex:
    err(str(ex))
    sys.exit(ex.exitcode)

except KeyboardInterrupt:
    err("interrupted")
    sys.exit(130)

except Exception as ex:
    # unexpected failure
    tb.print_exc()
    err(str(ex))
    sys.exit(1)
