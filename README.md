# emberweb

emberweb is a compact HTTP server for static sites. It runs on Linux. An
epoll event loop hands reads and writes to a pool of worker threads, and a
heap-based timer closes connections that stay idle. Form posts can log users
in or register them, and the log goes to dated files. A separate Unix-socket
command shell lets a running process take simple commands.

## Installation

```
pip install .
```

## Running the server

```
emberweb
```

The options and their defaults:

| Option | Default | Meaning |
| --- | --- | --- |
| `--port` | `1316` | Listening port. It must be between 1024 and 65535, or startup fails with exit status 1. |
| `--trig-mode` | `3` | `0` = LT/LT, `1` = LT/ET, `2` = ET/LT, anything else = ET/ET. The first part is the listening socket and the second is the connections. |
| `--timeout` | `60000` | Idle timeout in milliseconds. `0` turns it off. |
| `--linger` | off | Sets `SO_LINGER` on the listening socket. |
| `--threads` | `4` | Number of worker threads. |
| `--no-log` | off | Do not open the log. |
| `--log-level` | `1` | `0`=DEBUG, `1`=INFO, `2`=WARN, `3`=ERROR. |
| `--log-queue` | `512` | Size of the asynchronous log queue. `0` writes synchronously. |
| `--src-dir` | `<cwd>/resources/` | Directory that holds the served files. |

The server joins `--src-dir` and the request path as plain strings, so give
the directory with a trailing slash.

### What it serves

- Files from the source directory. `/` maps to `/index.html`. The paths
  `/index`, `/register`, `/login`, `/welcome`, `/video` and `/picture` get
  `.html` appended.
- The `Content-type` header comes from the file extension (`.html`, `.css`,
  `.js`, `.png`, `.jpg`, `.gif`, `.pdf` and others). Unknown extensions are
  sent as `text/plain`.
- A missing file or a directory gets a 404 response. A file that others
  cannot read gets a 403 response. A malformed request line gets a 400
  response. For each of these the body is `404.html`, `403.html` or
  `400.html` from the source directory, or a small generated HTML page when
  that file is absent.
- `Connection: keep-alive` is honoured only for HTTP/1.1 requests.

### Login and registration

A `POST` to `/login.html` or `/register.html` with
`Content-Type: application/x-www-form-urlencoded` and the fields `username`
and `password` is checked against the user table. On success the request
is answered with `/welcome.html`, and otherwise with `/error.html`.
Registration fails if the name is already taken.

At startup the user table is loaded from `users.conf` in the source
directory. Each line holds `username password`. Blank lines and lines that
start with `#` are skipped. The server keeps the table in memory through
`emberweb.userstore.UserStore`. `emberweb.userstore.SqliteUserStore` offers
the same `load_from_file` and `verify` methods backed by an SQLite file
(`resources/users.db` by default).

### Embedding

```python
import threading
from emberweb.webserver import WebServer

server = WebServer(
    port=1316, trig_mode=3, timeout_ms=60000, opt_linger=False,
    thread_num=4, open_log=True, log_level=1, log_queue_size=512,
    src_dir="resources/",
)
threading.Timer(60, server.stop).start()
server.start()   # blocks until stop() is called, then releases everything
```

### Log files

`emberweb.log` writes lines of the form
`YYYY-MM-DD HH:MM:SS.uuuuuu [info] : message` to `./log/YYYY_MM_DD.log`.
It starts a new file when the day changes. Within a day it also starts a new
file after every 50,000 lines, named `YYYY_MM_DD-N.log`. The module-level
functions `debug`, `info`, `warn` and `error` take printf-style formats and
write through the process-wide `instance()` once it has been opened with
`init`.

## Local command shell

`emberweb.shellserver.ShellServer` listens on a Unix stream socket, which is
`/tmp/mysocket` by default. It takes one command per connection. A request is
a fixed header (`CmdHeader`: a command name of up to 15 bytes plus three
integers) followed by the NUL-terminated command text. Every registered
command whose name starts with the requested name is run with
`(udata, text)`. The reply is the string returned by the last one that ran,
cut to 255 bytes. A `test1` command is always registered.

Start the demo server, which also registers `setDebugLevel` and
`getDebugLevel`. These read and set the level of the process log.
`--socket-path` chooses the socket:

```
emberweb-shell-server
```

### Sending commands

`emberweb-shell` takes the command name from the name it was started under,
with a leading `./` removed. It forwards at most one argument. To use it,
make a link named after the command and run the link:

```
ln -s "$(command -v emberweb-shell)" setDebugLevel
./setDebugLevel 2
```

The client always connects to `/tmp/mysocket`. From Python, any command and
any socket path can be used:

```python
from emberweb.shelltools import build_request, send_command

request = build_request(["./shelltools", "setDebugLevel", "2"])
print(send_command(request, "/tmp/mysocket").decode())
```

When `argv[0]` starts with `./shelltools`, `build_request` takes the command
name from `argv[1]`.

### Registering handlers

```python
from emberweb.shellserver import ShellServer

def hello(udata, args):
    return f"hello {args}\n"

shell = ShellServer("/tmp/mysocket")
shell.register("hello", hello, None)
shell.start()
# ...
shell.stop()
```

## Building blocks

- `emberweb.buffer.Buffer`: a growable byte buffer with read and write
  positions, plus `read_fd` and `write_fd`.
- `emberweb.heaptimer.HeapTimer`: a min-heap of millisecond timeouts keyed by
  id, with `add`, `adjust`, `do_work`, `tick` and `next_tick`.
- `emberweb.blockqueue.BlockDeque`: a bounded, blocking double-ended queue.
  `pop` raises `QueueClosed` after `close()`, and raises `TimeoutError` when
  a timeout is given and runs out.
- `emberweb.threadpool.ThreadPool`: a fixed-size pool of daemon workers.
  `close()` lets the workers finish the queued tasks first.
- `emberweb.epoller.Epoller`: a thin wrapper around `select.epoll`.
- `emberweb.httprequest.HttpRequest`, `emberweb.httpresponse.HttpResponse`
  and `emberweb.httpconn.HttpConn`: request parsing, response assembly and
  per-connection I/O.

## What it does not do

- It runs only on Linux, because it needs epoll.
- It has no TLS, no chunked transfer encoding and no range requests.
- It reads a request body only as the single line after the headers.
  `Content-Length` is not used to read the body.
- Passwords are stored and compared as plain text.
- The shell client has no option for the socket path.

## Tests

```
pip install .[test]
pytest
```