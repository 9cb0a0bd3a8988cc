# smolcode

A set of building blocks for a coding agent that works in a project
directory:

- **Tool functions** that take a dictionary of arguments and return a
  dictionary of results, raising `ToolError` on failure: reading, writing,
  editing and listing files (`smolcode.file_tools`), running shell
  commands, searching code with ripgrep, and listing or committing git
  changes (`smolcode.shell_tools`).
- **A memory store** (`smolcode.memory.MemoryManager`) that keeps short
  facts in SQLite and finds them with full-text search. The tools
  `create_memory`, `forget_memory` and `recall_memory` in
  `smolcode.memory_tools` use it, with the database at
  `.smolcode/memory.db`.
- **A planner** (`smolcode.planner.Planner`) that stores plans made of
  ordered steps with acceptance criteria. `smolcode.plan_tool.manage_plan`
  runs actions on it, with the database at `.smolcode/plans.db`.
- **A tool box** (`smolcode.toolbox.ToolBox`) that collects
  `ToolDefinition` objects by name, so that an agent loop can find the
  right one for each call.
- **An MCP client** (`smolcode.mcp.Server`) that starts an MCP server as a
  subprocess, completes the initialisation handshake, and lists and calls
  its tools. It uses the JSON-RPC 2.0 client in `smolcode.jsonrpc`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

Remember a fact and find it again:

```python
from smolcode.memory import MemoryManager

manager = MemoryManager(".smolcode/memory.db")
try:
    manager.add_memory("project-language", "The project is written in Python.")
    for memory in manager.search_memory("python"):
        print(memory.id, memory.content)
finally:
    manager.close()
```

Work with a plan:

```python
from smolcode.planner import Planner

planner = Planner(".smolcode/plans.db")
plan = planner.create("main")
plan.add_step("add-tests", "Write tests for the parser.", ["All cases pass"])
planner.save(plan)

plan = planner.get("main")
print(plan.inspect())
plan.mark_as_completed("add-tests")
planner.save(plan)
planner.close()
```

Call the tools directly:

```python
from smolcode.file_tools import write_file, read_file
from smolcode.plan_tool import manage_plan

write_file({"filepath": "notes/todo.txt", "content": "ship it\n"})
print(read_file({"filepath": "notes/todo.txt"})["contents"])

manage_plan({
    "plan_name": "main",
    "action": "add_steps",
    "steps_to_add": [{"id": "review", "description": "Review the change."}],
})
```

Talk to an MCP server:

```python
from smolcode.mcp import Server

server = Server("files", "my-mcp-server --stdio")
server.start(timeout=10)
try:
    tools = server.list_tools(timeout=10)
    print([tool.name for tool in tools])
    print(server.call("some_tool", {"arg": "value"}, timeout=10))
finally:
    server.close()
```

The shell tools need `git`, `rg` (ripgrep) and a POSIX shell on the
`PATH`, depending on which of them you use.