"""CLI constants."""

PROGRAM_NAME = "webhook-backup"

CONFIG_TEMPLATE = """\
# webhook-backup configuration
#
# Directives come first, one per line. Lines starting with '#' are comments.
#
# webhook <url>          Webhook that receives the archive, the download
#                        scripts and the status message.
# every <duration>       Interval between runs, e.g. "1 day", "12h", "week",
#                        "1d 6h". Units: ms, s, m/min, h, d, w, n/mon, y.
# password <passphrase>  Optional. Encrypts every file in the archive with
#                        WinZip AES-256; open it with 7-Zip or a similar
#                        tool, or with "webhook-backup decrypt".
# compression <0-9>      Optional deflate level, 9 by default.

webhook https://discord.com/api/webhooks/<id>/<token>
every 1 day

# The shebang line selects the interpreter for the script below it. The
# script runs in an empty scratch directory; everything it leaves there is
# archived and uploaded.
#!/bin/sh -e
echo "Replace this script with the commands that copy your data here." > README.txt
"""

RUN_FAILED_EXIT_CODE = 2
CONFIG_ERROR_EXIT_CODE = 1
