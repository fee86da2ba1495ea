# mprpc

A small remote procedure call framework. Services are published by an
`RpcProvider` (`mprpc.provider`), registered in ZooKeeper, and called
through an `RpcChannel` (`mprpc.channel`) that looks up the serving nodes
and picks one by consistent hashing on the caller's local address.

## Installing

```
pip install .
```

The package has no runtime dependencies outside the standard library; it
includes its own small ZooKeeper client (`mprpc.zkclient.ZkClient`).
Install the test extra with `pip install .[test]` to run the test suite.

## Configuration

Both sides read a plain `key=value` file. Blank lines and lines starting
with `#` are ignored, lines without `=` are skipped, and spaces around keys
and values are trimmed. If a key appears twice, the first value wins.

```
# address the provider listens on
rpcserverip=127.0.0.1
rpcserverport=8000
# ZooKeeper server used for service discovery
zookeeperip=127.0.0.1
zookeeperport=2181
```

`mprpc.application.init(argv)` takes the arguments `-i <configfile>`
(by default the process arguments after the program name), loads the file
and returns the shared `RpcConfig`. It raises `UsageError` when no file is
named and `mprpc.config.ConfigError` when the file cannot be opened.
Afterwards `mprpc.application.get_config().load(key)` returns a value, or an
empty string for a missing key.

## Running the example services

Start a provider node that publishes the sample friend service under the
server name `Node0`:

```
mprpc-provider -i config.conf
```

Then call it:

```
mprpc-consumer -i config.conf
```

The consumer asks `GetFriendsList` of `FriendServiceRpc` for user 1000 and
prints the names that come back, or the error text when the call fails.
Both commands print the usage line `format: command -i <configfile>` and
exit with status 1 when the arguments are wrong.

## Publishing your own service

Subclass `mprpc.service.Service` and mark handlers with
`mprpc.service.rpc_method(request_type, response_type)`. A handler is called
as `(controller, request, response, done)` and must call `done()` to send the
response. The RPC method name is the handler name in CamelCase
(`get_friends_list` becomes `GetFriendsList`); the service name is the class
attribute `rpc_name`, or the class name when it is not set. Messages are
`mprpc.protocol.Message` subclasses declaring `Field(number, kind, ...)`
attributes.

```python
from mprpc.application import init
from mprpc.examples import FriendService
from mprpc.provider import RpcProvider

init(["-i", "config.conf"])
provider = RpcProvider()
provider.notify_service(FriendService())
provider.set_server_name("Node0")
provider.run()
```

`run()` listens on `rpcserverip:rpcserverport`, creates the znodes
`/<service>` and `/<service>/<method>`, and an ephemeral node
`/<service>/<method>/<server name>` holding `ip:port`, then serves requests
until the process stops. `RpcProvider.handle_request(data)` answers a
single framed request without any network, which is handy for testing.

## Calling a service

```python
from mprpc.channel import RpcChannel
from mprpc.controller import RpcController
from mprpc.examples import FriendService, GetFriendsListRequest
from mprpc.service import Stub

stub = Stub(RpcChannel(), FriendService)
controller = RpcController()
response = stub.call("GetFriendsList", GetFriendsListRequest(userid=1000), controller)
if controller.failed:
    print(controller.error_text)
```

Failures (unknown method path, bad address, connect, send, receive or parse
errors) are not raised but recorded on the `RpcController`: check `failed`
and `error_text`. `RpcChannel` accepts a `locate` callable mapping a path
such as `/FriendServiceRpc/GetFriendsList` to `ip:port`, which replaces the
ZooKeeper lookup. `mprpc.caller.call_friend_service(channel)` and
`mprpc.caller.call_user_service(channel)` are complete client examples.

## Wire format

A request is a 4-byte little-endian header length, an `RpcHeader` message
holding the service name, method name and argument size, and then the
serialized request message (`mprpc.protocol.encode_request` /
`decode_request`). The reply is the serialized response message. Messages
use protobuf-compatible varint and length-delimited encoding.

## Logging

`mprpc.logger.log_info` and `mprpc.logger.log_err` take a %-style format
and arguments. A background thread appends each record, as
`H-M-S => [info]message` or `[error]`, to a file named
`<year>-<month>-<day>-log.txt` in the working directory.

## Limitations

- No ZooKeeper server is included; providers and the default channel need
  one running at `zookeeperip:zookeeperport`.
- Only consistent hashing on the local IP is available for choosing a node;
  asking `mprpc.routing.query_strategy` for the random or polling strategy
  logs an error and returns the hashing strategy.
- The channel opens a new ZooKeeper session and a new connection for every
  call, and reads the reply with a single receive of at most 1024 bytes.