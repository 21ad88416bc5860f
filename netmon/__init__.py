"""netmon - browser network capture for automated test and debug workflows.

The capture pipeline correlates Chrome DevTools Protocol network events into
NetworkRecord objects, filters them in two stages (URL/method when the request
is sent, content type once the response arrives) and keeps the survivors in a
small bounded buffer that can be queried through a request/response tool
surface.

Usage:
    from netmon.capture import MonitorSession

    session = MonitorSession()
    await session.start(max_buffer_size=20)
    recent = session.list_recent(count=5)
"""

__version__ = "0.3.3"
