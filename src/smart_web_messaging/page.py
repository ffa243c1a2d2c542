"""
Default form-filler page.

When no target URL is configured, a small HTML page hosting
``<tiro-form-filler>`` is rendered to a temp file and loaded instead.
"""

import atexit
import functools
import html
import os
import tempfile
from pathlib import Path
from string import Template
from typing import Optional

DEFAULT_SDK_URL = "https://cdn.tiro.health/sdk/latest/tiro-web-sdk.iife.js"

PAGE_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Form Filler</title>
  <script src="$sdk_url"></script>
  <style>
    html, body { margin: 0; height: 100%; }
    tiro-form-filler { display: block; height: 100%; }
  </style>
</head>
<body>
  <tiro-form-filler sdc-endpoint-address="$sdc_endpoint_address"$data_endpoint_attr></tiro-form-filler>
</body>
</html>
""")


def render_page(sdc_endpoint_address: str, data_endpoint_address: Optional[str] = None,
                sdk_url: str = DEFAULT_SDK_URL) -> str:
    data_attr = ""
    if data_endpoint_address and data_endpoint_address.strip():
        data_attr = f' data-endpoint-address="{html.escape(data_endpoint_address)}"'
    return PAGE_TEMPLATE.substitute(
        sdk_url=html.escape(sdk_url),
        sdc_endpoint_address=html.escape(sdc_endpoint_address),
        data_endpoint_attr=data_attr,
    )


@functools.lru_cache(maxsize=16)
def create_page(sdc_endpoint_address: str, data_endpoint_address: Optional[str] = None,
                sdk_url: str = DEFAULT_SDK_URL) -> str:
    """Write the default page to a temp file and return its file:// URI.

    The same arguments always return the same file; files are removed at exit.
    """
    fd, name = tempfile.mkstemp(prefix="tiro-form-filler-", suffix=".html")
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(render_page(sdc_endpoint_address, data_endpoint_address, sdk_url))
    path = Path(name)
    atexit.register(path.unlink, missing_ok=True)
    return path.resolve().as_uri()
