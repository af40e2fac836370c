# ---- Control sequences as emitted by the agent CLI ----

SYNC_ON = b"\x1b[?2026h"
SYNC_OFF = b"\x1b[?2026l"

# Desktop notification report, BEL- and ST-terminated
OSC9_BEL = b"\x1b]9;Claude is waiting for your input\x07"
OSC9_ST = b"\x1b]9;Claude is waiting for your input\x1b\\"

# Ordinary terminal output that must pass through untouched
PLAIN_ANSI = (
    b"\x1b[38;5;174m\xe2\x95\xad\xe2\x94\x80\xe2\x94\x80\x1b[1CClaude\x1b[1CCode\x1b[39m\r\n"
    b"\x1b]0;claude\x07\x1b[?25l\x1b[2K\x1b[1A\x1b[?2004h\x1b[34mtmp\x1b[0m"
)

# A repaint batch as written by the TUI
REPAINT_BATCH = SYNC_ON + b"\x1b[2K\x1b[1A\x1b[2K\r\x1b[1m> \x1b[22mhello" + SYNC_OFF


# ---- stream-json lines ----

USER_LINE = b'{"type":"user","message":{"content":[{"type":"text","text":"hi"}]}}\n'

ASSISTANT_TOOL_LINE = (
    b'{"type":"assistant","message":{"content":'
    b'[{"type":"tool_use","id":"t1","name":"Bash","input":{"command":"ls"}}]}}\n'
)

RESULT_LINE = (
    b'{"type":"result","message":{"content":'
    b'[{"type":"tool_result","tool_use_id":"t1","is_error":false}]}}\n'
)


def two_way_splits(data: bytes):
    """Yield every (head, tail) split with both parts non-empty."""
    for i in range(1, len(data)):
        yield data[:i], data[i:]
