"""Built-in widget types and declarative definitions shipped with the runtime."""

from __future__ import annotations

import copy
import logging

from widget_catalog import DefinitionCatalog
from widget_registry import WidgetRegistry

logger = logging.getLogger("widgets.builtins")


BUILTIN_TYPES = [
    {
        "type": "welcome",
        "version": 1,
        "name": "Welcome",
        "description": "Welcome card with quick start actions",
        "default_config": {},
    },
    {
        "type": "github",
        "version": 1,
        "name": "GitHub Pull Requests",
        "description": "Display pull requests from GitHub repositories",
        "default_config": {"repositories": [], "filters": []},
    },
    {
        "type": "jira",
        "version": 1,
        "name": "Jira Issues",
        "description": "Display Jira issues and auto-filter based on events",
        "default_config": {"project_key": "PROJ", "jira_url": ""},
    },
    {
        "type": "github-prs",
        "version": 1,
        "name": "GitHub Pull Requests",
        "description": "View and track pull requests from your repositories",
        "default_config": {},
    },
    {
        "type": "linear-issues",
        "version": 1,
        "name": "Linear Issues",
        "description": "View and track issues assigned to you",
        "default_config": {},
    },
    {
        "type": "slack-messages",
        "version": 1,
        "name": "Slack Channels",
        "description": "View recent messages from your Slack channels",
        "default_config": {},
    },
    {
        "type": "calendar-events",
        "version": 1,
        "name": "Calendar Events",
        "description": "View your upcoming calendar events",
        "default_config": {},
    },
]


BUILTIN_DEFINITIONS = {
    "github-prs": {
        "metadata": {
            "name": "GitHub Pull Requests",
            "description": "View and track pull requests from your repositories",
            "category": "development",
            "schemaVersion": 1,
        },
        "dataSource": {
            "provider": "github",
            "endpoint": "/search/issues",
            "method": "GET",
            "params": {"q": "is:pr is:open author:@me"},
            "pollIntervalSeconds": 60,
            "dataPath": "$.items",
        },
        "fields": [
            {"name": "number", "path": "$.number", "label": "PR", "type": "number", "format": "#{{value}}"},
            {"name": "title", "path": "$.title", "label": "Title", "type": "string"},
            {"name": "author", "path": "$.user.login", "label": "Author", "type": "string"},
            {
                "name": "state",
                "path": "$.state",
                "label": "Status",
                "type": "enum",
                "enumLabels": {"open": "Open", "closed": "Closed"},
            },
            {"name": "url", "path": "$.html_url", "type": "url"},
            {"name": "created", "path": "$.created_at", "label": "Created", "type": "date"},
        ],
        "layout": {
            "type": "list",
            "fields": {
                "title": "title",
                "subtitle": "author",
                "metadata": ["number", "created"],
                "badge": {"field": "state", "colorMap": {"Open": "green", "Closed": "red"}},
            },
            "searchable": True,
            "searchField": "title",
        },
        "interactions": {
            "onSelect": {
                "eventName": "github.pr.selected",
                "payload": {"number": "{{number}}", "title": "{{title}}", "author": "{{user.login}}"},
                "source": "github-prs",
            }
        },
        "emptyMessage": "No open pull requests",
        "errorMessage": "Could not load pull requests",
    },
    "linear-issues": {
        "metadata": {
            "name": "Linear Issues",
            "description": "View and track issues assigned to you",
            "category": "project-management",
            "schemaVersion": 1,
        },
        "dataSource": {
            "provider": "linear",
            "endpoint": "/graphql",
            "method": "POST",
            "body": {"query": "{ viewer { assignedIssues { nodes { identifier title priority state { name } } } } }"},
            "pollIntervalSeconds": 120,
            "dataPath": "$.data.viewer.assignedIssues.nodes",
        },
        "fields": [
            {"name": "id", "path": "$.identifier", "label": "ID", "type": "string"},
            {"name": "title", "path": "$.title", "label": "Title", "type": "string"},
            {"name": "status", "path": "$.state.name", "label": "Status", "type": "string"},
            {
                "name": "priority",
                "path": "$.priority",
                "label": "Priority",
                "type": "enum",
                "enumLabels": {"0": "None", "1": "Urgent", "2": "High", "3": "Medium", "4": "Low"},
            },
        ],
        "layout": {
            "type": "table",
            "columns": [
                {"field": "id", "header": "ID", "width": "100px"},
                {"field": "title", "header": "Title", "sortable": True},
                {"field": "status", "header": "Status"},
                {"field": "priority", "header": "Priority", "sortable": True},
            ],
            "sortable": True,
            "defaultSort": {"field": "priority", "direction": "asc"},
        },
        "subscriptions": [
            {
                "pattern": "github.pr.selected",
                "action": {
                    "filter": {"field": "title", "operator": "contains", "value": "{{event.title}}"},
                    "notification": {"message": "Showing issues for PR #{{event.number}}"},
                },
            }
        ],
        "emptyMessage": "No issues assigned",
    },
    "slack-messages": {
        "metadata": {
            "name": "Slack Channels",
            "description": "View recent messages from your Slack channels",
            "category": "communication",
            "schemaVersion": 1,
        },
        "dataSource": {
            "provider": "slack",
            "endpoint": "/conversations.list",
            "method": "GET",
            "params": {"limit": 20},
            "pollIntervalSeconds": 30,
            "dataPath": "$.channels",
        },
        "fields": [
            {"name": "name", "path": "$.name", "label": "Channel", "type": "string", "format": "#{{value}}"},
            {"name": "topic", "path": "$.topic.value", "label": "Topic", "type": "string"},
            {"name": "members", "path": "$.num_members", "label": "Members", "type": "number"},
            {"name": "private", "path": "$.is_private", "label": "Private", "type": "boolean"},
        ],
        "layout": {
            "type": "cards",
            "card": {"title": "name", "description": "topic", "metadata": ["members"]},
            "columns": 2,
        },
        "subscriptions": [
            {
                "pattern": "github.pr.*",
                "action": {"notification": {"message": "{{event.author}} selected {{event.title}}"}},
            }
        ],
    },
    "calendar-events": {
        "metadata": {
            "name": "Calendar Events",
            "description": "View your upcoming calendar events",
            "category": "productivity",
            "schemaVersion": 1,
        },
        "dataSource": {
            "provider": "google-calendar",
            "endpoint": "/calendars/primary/events",
            "method": "GET",
            "params": {"maxResults": 10, "singleEvents": True, "orderBy": "startTime"},
            "pollIntervalSeconds": 300,
            "dataPath": "$.items",
        },
        "fields": [
            {"name": "summary", "path": "$.summary", "label": "Event", "type": "string"},
            {"name": "start", "path": "$.start.dateTime", "label": "Starts", "type": "date"},
            {"name": "location", "path": "$.location", "label": "Location", "type": "string"},
            {"name": "link", "path": "$.htmlLink", "type": "url"},
        ],
        "layout": {
            "type": "list",
            "fields": {"title": "summary", "subtitle": "start", "metadata": ["location"]},
        },
        "interactions": {
            "onSelect": {
                "eventName": "calendar.event.selected",
                "payload": {"summary": "{{summary}}", "start": "{{start}}"},
                "source": "calendar-events",
            }
        },
        "emptyMessage": "Nothing scheduled",
    },
}


def register_builtin_types(registry: WidgetRegistry) -> None:
    for spec in BUILTIN_TYPES:
        result = registry.register_type(
            spec["type"],
            spec["version"],
            name=spec["name"],
            description=spec["description"],
            default_config=spec["default_config"],
        )
        if not result["ok"]:
            logger.warning("builtin_type_rejected type=%s errors=%s", spec["type"], result["errors"])


def register_builtin_definitions(catalog: DefinitionCatalog) -> None:
    for widget_id, definition in BUILTIN_DEFINITIONS.items():
        result = catalog.register(widget_id, copy.deepcopy(definition))
        if not result["ok"]:
            logger.warning("builtin_definition_rejected widget_id=%s errors=%s", widget_id, result["errors"])
