"""
Google Analytics 4 connector

Pulls traffic totals and audience demographics for a GA4 property, either
with a service account or with a merchant's OAuth access token.
"""
import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.analytics.data_v1beta.types import (
    DateRange,
    Dimension,
    Metric,
    OrderBy,
    RunReportRequest,
)
from google.api_core import exceptions as google_exceptions
from google.oauth2 import credentials as oauth_credentials
from google.oauth2 import service_account

from ghost_cro.utils.logger import log

ANALYTICS_READONLY_SCOPE = "https://www.googleapis.com/auth/analytics.readonly"

SUMMARY_METRICS = ("sessions", "totalUsers", "transactions", "averageSessionDuration", "bounceRate")

# (response key, dimension names, label key, limit)
DEMOGRAPHIC_REPORTS = (
    ("ageGroups", ("userAgeBracket",), "ageRange", None),
    ("genders", ("userGender",), "gender", None),
    ("locations", ("country", "city"), "country", 10),
    ("devices", ("deviceCategory",), "deviceCategory", None),
)


class GA4Error(Exception):
    """GA4 request failed; ``status_code`` is the HTTP status to surface"""

    def __init__(self, message: str, status_code: int = 500, reconnect: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.reconnect = reconnect


def build_service_account_client(credentials_info: Dict) -> BetaAnalyticsDataClient:
    """Client from a service-account JSON (client_email + private_key)"""
    info = dict(credentials_info)
    # Keys pasted through env vars/forms arrive with literal \n
    info["private_key"] = info["private_key"].replace("\\n", "\n")
    info.setdefault("token_uri", "https://oauth2.googleapis.com/token")

    creds = service_account.Credentials.from_service_account_info(info, scopes=[ANALYTICS_READONLY_SCOPE])
    return BetaAnalyticsDataClient(credentials=creds)


def build_oauth_client(access_token: str) -> BetaAnalyticsDataClient:
    creds = oauth_credentials.Credentials(token=access_token, scopes=[ANALYTICS_READONLY_SCOPE])
    return BetaAnalyticsDataClient(credentials=creds)


def _with_percentages(rows: List[Dict]) -> List[Dict]:
    total = sum(r["sessions"] for r in rows)
    for row in rows:
        row["percentage"] = (row["sessions"] / total) * 100 if total > 0 else 0
    return sorted(rows, key=lambda r: r["sessions"], reverse=True)


class GA4Client:
    """
    Reports for one GA4 property

    Args:
        client: Authenticated BetaAnalyticsDataClient
        property_id: Numeric property id (without the "properties/" prefix)
    """

    def __init__(self, client: BetaAnalyticsDataClient, property_id: str):
        self.client = client
        self.property_id = str(property_id)

    def _build_request(
        self,
        start_date: datetime,
        end_date: datetime,
        metrics,
        dimensions=(),
        limit: Optional[int] = None,
    ) -> RunReportRequest:
        request = RunReportRequest(
            property=f"properties/{self.property_id}",
            date_ranges=[DateRange(start_date=start_date.strftime("%Y-%m-%d"), end_date=end_date.strftime("%Y-%m-%d"))],
            dimensions=[Dimension(name=d) for d in dimensions],
            metrics=[Metric(name=m) for m in metrics],
        )
        if limit:
            request.limit = limit
            request.order_bys = [OrderBy(metric=OrderBy.MetricOrderBy(metric_name="sessions"), desc=True)]
        return request

    async def _run_report(self, request: RunReportRequest):
        try:
            return await asyncio.to_thread(self.client.run_report, request)
        except google_exceptions.PermissionDenied as e:
            raise GA4Error(f"Permission denied: {e.message}", status_code=403) from e
        except google_exceptions.NotFound as e:
            raise GA4Error(f"Property not found: {e.message}", status_code=404) from e
        except google_exceptions.Unauthenticated as e:
            raise GA4Error("GA4 connection expired. Please reconnect your account.", status_code=401, reconnect=True) from e
        except google_exceptions.GoogleAPICallError as e:
            raise GA4Error(f"GA4 request failed: {e.message}") from e

    async def fetch_summary(self, start_date: datetime, end_date: datetime) -> Dict:
        """Sessions, users, transactions, conversion rate (%), duration and bounce rate (%)"""
        response = await self._run_report(self._build_request(start_date, end_date, SUMMARY_METRICS))

        values = [0.0] * len(SUMMARY_METRICS)
        if response.rows:
            values = [float(v.value or 0) for v in response.rows[0].metric_values]

        sessions, users, transactions, duration, bounce = values
        conversion_rate = (transactions / sessions) * 100 if sessions > 0 else 0

        return {
            "sessions": int(sessions),
            "totalUsers": int(users),
            "transactions": int(transactions),
            "conversionRate": round(conversion_rate, 2),
            "averageSessionDuration": round(duration, 2),
            # GA4 reports a 0-1 fraction
            "bounceRate": round(bounce * 100, 2),
        }

    async def fetch_demographics(self, start_date: datetime, end_date: datetime) -> Dict[str, List[Dict]]:
        """Age, gender, top-10 location and device splits, each sorted by sessions"""
        demographics = {}

        for key, dimensions, label, limit in DEMOGRAPHIC_REPORTS:
            response = await self._run_report(
                self._build_request(start_date, end_date, ("sessions",), dimensions=dimensions, limit=limit)
            )
            rows = []
            for row in response.rows:
                entry = {
                    label: row.dimension_values[0].value or "Unknown",
                    "sessions": int(row.metric_values[0].value or 0),
                }
                if key == "locations":
                    entry["city"] = row.dimension_values[1].value or None
                rows.append(entry)
            demographics[key] = _with_percentages(rows)

        return demographics

    async def fetch_metrics(self, start_date: datetime, end_date: datetime, include_demographics: bool = True) -> Dict:
        metrics = await self.fetch_summary(start_date, end_date)

        if include_demographics:
            try:
                metrics["demographics"] = await self.fetch_demographics(start_date, end_date)
            except GA4Error as e:
                # Demographics need Google signals; totals are still useful without them
                log.warning(f"GA4 demographics unavailable for property {self.property_id}: {e}")
                metrics["demographics"] = None

        metrics["source"] = "ga4"
        log.info(f"Fetched GA4 metrics for property {self.property_id}: {metrics['sessions']} sessions")
        return metrics
