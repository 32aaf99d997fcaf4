"""
Default docsify homepage for the generated website.
"""

import html
import json
from typing import Dict


def render(config: Dict) -> str:
    """Render index.html from the site settings (name, repo, homepage, stylesheet...)."""
    settings = dict(config)
    stylesheet = settings.pop('stylesheet', '') or '//unpkg.com/docsify/lib/themes/vue.css'
    title = html.escape(settings.get('name') or 'Documentation')
    docsify_config = json.dumps(settings, indent=8)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta http-equiv="X-UA-Compatible" content="IE=edge,chrome=1">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <link rel="stylesheet" href="{html.escape(stylesheet)}">
</head>
<body>
    <div id="app"></div>
    <script>
        window.$docsify = {docsify_config};
    </script>
    <script src="//unpkg.com/docsify/lib/docsify.min.js"></script>
    <script src="//unpkg.com/docsify/lib/plugins/search.min.js"></script>
    <script src="//unpkg.com/docsify-plantuml/dist/docsify-plantuml.min.js"></script>
</body>
</html>"""
