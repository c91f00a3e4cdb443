"""
Business-assistant tool catalog.

Every tool validates its arguments with a pydantic model, looks up the
integration client it needs in the per-execution `ToolContext` and forwards
a single `execute_action` call, returning the client's result unmodified.
Argument names are camelCase on the wire because that is what the model sees.
"""
from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from zapta.errors import IntegrationNotConnectedError
from zapta.integrations.base import IntegrationClient
from zapta.persistence.models import now_utc

STRIPE = "stripe"
EMAIL = "email"
CALENDAR = "google-calendar"
HUBSPOT = "hubspot"
DRIVE = "google-drive"
NOTION = "notion"

PROVIDER_LABELS: dict[str, str] = {
    STRIPE: "Stripe",
    EMAIL: "Email",
    CALENDAR: "Google Calendar",
    HUBSPOT: "HubSpot",
    DRIVE: "Google Drive",
    NOTION: "Notion",
}


@dataclass(frozen=True)
class ToolContext:
    """What one execution's tools may touch. Built per execution, never shared."""

    integration_map: dict[str, IntegrationClient]
    tenant_id: Any
    agent_id: Any

    def client(self, provider: str) -> IntegrationClient:
        client = self.integration_map.get(provider)
        if client is None:
            raise IntegrationNotConnectedError(PROVIDER_LABELS.get(provider, provider))
        return client


# ── Argument models ──────────────────────────────────────────────────────────


class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class NoArgs(ToolArgs):
    pass


class LimitArgs(ToolArgs):
    limit: int = Field(10, description="Number of items to retrieve (default 10)")


class QueryArgs(ToolArgs):
    query: str = Field(description="Search query")


class DateRangeArgs(ToolArgs):
    start_date: str = Field(alias="startDate", description="Start date in YYYY-MM-DD format")
    end_date: str = Field(alias="endDate", description="End date in YYYY-MM-DD format")


class RecentEmailsArgs(ToolArgs):
    limit: int = Field(10, description="Number of emails to retrieve")
    filter: Literal["all", "unread"] = Field("all", description="Filter for all or unread emails")


class UpcomingEventsArgs(ToolArgs):
    days: int = Field(7, description="Number of days to look ahead (default 7)")


class MeetingSummaryArgs(ToolArgs):
    date: str | None = Field(
        None, description="Date in YYYY-MM-DD format (defaults to today if not specified)"
    )


class AvailabilityArgs(ToolArgs):
    start_time: str = Field(alias="startTime", description="Start time in ISO 8601 format")
    end_time: str = Field(alias="endTime", description="End time in ISO 8601 format")
    calendar_id: str = Field("primary", alias="calendarId", description="Calendar ID to check")


class SearchContactsArgs(ToolArgs):
    query: str = Field(description="Search query (email, name, etc.)")
    limit: int = Field(10, description="Number of results")


class ListFilesArgs(ToolArgs):
    limit: int = Field(10, description="Number of files to list")
    query: str | None = Field(None, description="Optional search query to filter files by name")


class ReadDocumentArgs(ToolArgs):
    file_id: str = Field(alias="fileId", description="The Google Drive file ID to read")


class QueryDatabaseArgs(ToolArgs):
    database_id: str = Field(alias="databaseId", description="The Notion database ID to query")
    query: str | None = Field(None, description="Optional filter query")


class GetPageArgs(ToolArgs):
    page_id: str = Field(alias="pageId", description="The Notion page ID to retrieve")


class SendEmailArgs(ToolArgs):
    to: str | list[str] = Field(description="Recipient email address(es)")
    subject: str = Field(description="Email subject line")
    body: str = Field(description="Email body content (plain text or HTML)")
    from_: str | None = Field(
        None, alias="from", description="Optional from address (uses default if not specified)"
    )


class CalendarEventArgs(ToolArgs):
    summary: str = Field(description="Event title/summary")
    description: str | None = Field(None, description="Event description")
    start_time: str = Field(alias="startTime", description="Start time in ISO 8601 format")
    end_time: str = Field(alias="endTime", description="End time in ISO 8601 format")
    attendees: list[str] | None = Field(None, description="List of attendee email addresses")
    location: str | None = Field(None, description="Event location")


class CreateContactArgs(ToolArgs):
    email: str = Field(
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Contact email address (required)"
    )
    first_name: str | None = Field(None, alias="firstName", description="Contact first name")
    last_name: str | None = Field(None, alias="lastName", description="Contact last name")
    phone: str | None = Field(None, description="Contact phone number")
    company: str | None = Field(None, description="Contact company name")


class CreateDealArgs(ToolArgs):
    deal_name: str = Field(alias="dealName", description="Name of the deal")
    amount: float = Field(description="Deal amount in dollars")
    stage: str | None = Field(None, description="Deal stage (default: appointmentscheduled)")


# ── Schema rendering ─────────────────────────────────────────────────────────


def _strip(node: Any, *, drop: tuple[str, ...]) -> Any:
    if isinstance(node, dict):
        return {k: _strip(v, drop=drop) for k, v in node.items() if k not in drop}
    if isinstance(node, list):
        return [_strip(v, drop=drop) for v in node]
    return node


def _collapse_any_of(node: Any) -> Any:
    """Gemini's schema subset has no anyOf: keep the first non-null branch."""
    if isinstance(node, dict):
        if "anyOf" in node:
            branches = [b for b in node["anyOf"] if b.get("type") != "null"]
            merged = {k: v for k, v in node.items() if k != "anyOf"}
            merged.update(branches[0] if branches else {"type": "string"})
            return _collapse_any_of(merged)
        return {k: _collapse_any_of(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_collapse_any_of(v) for v in node]
    return node


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[ToolArgs]
    handler: Callable[[ToolArgs], Any] = field(repr=False)

    def run(self, args: dict[str, Any] | None) -> Any:
        return self.handler(self.args_model.model_validate(args or {}))

    def parameters_schema(self) -> dict[str, Any]:
        schema = self.args_model.model_json_schema(by_alias=True)
        schema = _strip(schema, drop=("title",))
        schema.setdefault("properties", {})
        return schema

    def openai_schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }

    def anthropic_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters_schema(),
        }

    def gemini_schema(self) -> dict[str, Any]:
        declaration: dict[str, Any] = {"name": self.name, "description": self.description}
        params = _collapse_any_of(_strip(copy.deepcopy(self.parameters_schema()), drop=("default",)))
        if params.get("properties"):
            declaration["parameters"] = params
        return declaration


# ── Catalog ──────────────────────────────────────────────────────────────────

ActionBuilder = Callable[[Any, ToolContext], tuple[str, dict[str, Any]]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    provider: str
    description: str
    args_model: type[ToolArgs]
    build: ActionBuilder


def _plain(action: str, *names: str) -> ActionBuilder:
    """Forward the listed (wire-named) arguments unchanged."""

    def build(args: ToolArgs, ctx: ToolContext) -> tuple[str, dict[str, Any]]:
        dumped = args.model_dump(by_alias=True)
        return action, {name: dumped.get(name) for name in names}

    return build


def _meeting_summary(args: MeetingSummaryArgs, ctx: ToolContext) -> tuple[str, dict[str, Any]]:
    return "getMeetingSummary", {"date": args.date or now_utc().date().isoformat()}


def _availability(args: AvailabilityArgs, ctx: ToolContext) -> tuple[str, dict[str, Any]]:
    return "check_availability", {
        "calendarId": args.calendar_id,
        "timeMin": args.start_time,
        "timeMax": args.end_time,
    }


def _send_email(args: SendEmailArgs, ctx: ToolContext) -> tuple[str, dict[str, Any]]:
    return "send_email", {
        "to": args.to,
        "subject": args.subject,
        "body": args.body,
        "from": args.from_,
        "agent_id": str(ctx.agent_id),
        "billable": True,
    }


def _create_event(args: CalendarEventArgs, ctx: ToolContext) -> tuple[str, dict[str, Any]]:
    return "create_event", {
        "event": {
            "summary": args.summary,
            "description": args.description,
            "start": {"dateTime": args.start_time},
            "end": {"dateTime": args.end_time},
            "attendees": [{"email": a} for a in args.attendees] if args.attendees else None,
            "location": args.location,
        },
        "agent_id": str(ctx.agent_id),
    }


def _create_contact(args: CreateContactArgs, ctx: ToolContext) -> tuple[str, dict[str, Any]]:
    return "create_contact", {
        "contact": {
            "properties": {
                "email": args.email,
                "firstname": args.first_name,
                "lastname": args.last_name,
                "phone": args.phone,
                "company": args.company,
            }
        }
    }


def _create_deal(args: CreateDealArgs, ctx: ToolContext) -> tuple[str, dict[str, Any]]:
    amount = int(args.amount) if float(args.amount).is_integer() else args.amount
    return "create_deal", {
        "deal": {
            "properties": {
                "dealname": args.deal_name,
                "amount": str(amount),
                "dealstage": args.stage or "appointmentscheduled",
            }
        }
    }


TOOL_CATALOG: tuple[ToolDefinition, ...] = (
    # stripe
    ToolDefinition(
        "getRevenue", STRIPE,
        "Get total revenue from Stripe for a specific date range. Use this to answer questions about sales, income, or earnings.",
        DateRangeArgs, _plain("getRevenue", "startDate", "endDate"),
    ),
    ToolDefinition(
        "getRecentPayments", STRIPE,
        "Get recent successful payments from Stripe. Shows customer transactions and payment details.",
        LimitArgs, _plain("getRecentPayments", "limit"),
    ),
    ToolDefinition(
        "getFailedCharges", STRIPE,
        "Get recent failed payment attempts from Stripe. Use this to identify payment issues or customers needing attention.",
        LimitArgs, _plain("getFailedCharges", "limit"),
    ),
    ToolDefinition(
        "getCustomerCount", STRIPE,
        "Get total number of customers in Stripe. Use for customer base metrics.",
        NoArgs, _plain("getCustomerCount"),
    ),
    # email
    ToolDefinition(
        "getRecentEmails", EMAIL,
        "Get recent emails from the inbox. Shows sent email activity and usage.",
        RecentEmailsArgs, _plain("getRecentEmails", "limit", "filter"),
    ),
    ToolDefinition(
        "searchEmails", EMAIL,
        "Search emails by subject or content. Use this to find specific email conversations.",
        QueryArgs, _plain("searchEmails", "query"),
    ),
    ToolDefinition(
        "getUnreadCount", EMAIL,
        "Get count of unread emails. Use for inbox status checks.",
        NoArgs, _plain("getUnreadCount"),
    ),
    ToolDefinition(
        "sendEmail", EMAIL,
        "Send an email to one or more recipients. Use this to send notifications, responses, or messages.",
        SendEmailArgs, _send_email,
    ),
    # calendar
    ToolDefinition(
        "getUpcomingEvents", CALENDAR,
        "Get upcoming calendar events for the next N days. Use this to check schedule, meetings, or appointments.",
        UpcomingEventsArgs, _plain("getUpcomingEvents", "days"),
    ),
    ToolDefinition(
        "getMeetingSummary", CALENDAR,
        "Get a summary of meetings for a specific date. Shows all events scheduled for that day.",
        MeetingSummaryArgs, _meeting_summary,
    ),
    ToolDefinition(
        "checkAvailability", CALENDAR,
        "Check calendar availability between two times. Returns free/busy status.",
        AvailabilityArgs, _availability,
    ),
    ToolDefinition(
        "createCalendarEvent", CALENDAR,
        "Create a new event in Google Calendar. Use this to schedule meetings or appointments.",
        CalendarEventArgs, _create_event,
    ),
    # hubspot
    ToolDefinition(
        "getRecentContacts", HUBSPOT,
        "Get recently created contacts from HubSpot CRM. Shows new leads and contacts.",
        LimitArgs, _plain("getRecentContacts", "limit"),
    ),
    ToolDefinition(
        "getDeals", HUBSPOT,
        "Get deals from HubSpot CRM. Shows sales pipeline and opportunities.",
        LimitArgs, _plain("get_deals", "limit"),
    ),
    ToolDefinition(
        "getPipelineValue", HUBSPOT,
        "Get total pipeline value from HubSpot. Shows aggregate deal values by stage.",
        NoArgs, _plain("getPipelineValue"),
    ),
    ToolDefinition(
        "searchContacts", HUBSPOT,
        "Search for contacts in HubSpot by email or name.",
        SearchContactsArgs, _plain("search_contacts", "query", "limit"),
    ),
    ToolDefinition(
        "createContact", HUBSPOT,
        "Create a new contact in HubSpot CRM. Use this to add leads or customers.",
        CreateContactArgs, _create_contact,
    ),
    ToolDefinition(
        "createDeal", HUBSPOT,
        "Create a new deal in HubSpot CRM. Use this to track sales opportunities.",
        CreateDealArgs, _create_deal,
    ),
    # google drive
    ToolDefinition(
        "listFiles", DRIVE,
        "List files from Google Drive. Shows recent documents and files.",
        ListFilesArgs, _plain("list_files", "limit", "query"),
    ),
    ToolDefinition(
        "searchFiles", DRIVE,
        "Search for files in Google Drive by name or content.",
        QueryArgs, _plain("search_files", "query"),
    ),
    ToolDefinition(
        "readDocument", DRIVE,
        "Read content from a Google Drive document by file ID. Returns the document text.",
        ReadDocumentArgs, _plain("read_document", "fileId"),
    ),
    # notion
    ToolDefinition(
        "getDatabases", NOTION,
        "Get accessible Notion databases. Shows all databases the integration can access.",
        NoArgs, _plain("get_databases"),
    ),
    ToolDefinition(
        "queryDatabase", NOTION,
        "Query a Notion database to retrieve entries. Use this to get structured data from Notion.",
        QueryDatabaseArgs, _plain("query_database", "databaseId", "query"),
    ),
    ToolDefinition(
        "getPage", NOTION,
        "Get content from a Notion page by page ID. Returns the page content as text.",
        GetPageArgs, _plain("get_page", "pageId"),
    ),
    ToolDefinition(
        "searchNotion", NOTION,
        "Search across all Notion pages and databases accessible to the integration.",
        QueryArgs, _plain("search", "query"),
    ),
)


def _bind(definition: ToolDefinition, ctx: ToolContext) -> Tool:
    def handler(args: ToolArgs) -> Any:
        client = ctx.client(definition.provider)
        action, params = definition.build(args, ctx)
        return client.execute_action(action, params)

    return Tool(definition.name, definition.description, definition.args_model, handler)


def create_tools(context: ToolContext) -> dict[str, Tool]:
    """The full catalog bound to one execution's context."""
    return {definition.name: _bind(definition, context) for definition in TOOL_CATALOG}


def get_available_tool_names(integration_map: dict[str, Any]) -> list[str]:
    return [d.name for d in TOOL_CATALOG if d.provider in integration_map]
