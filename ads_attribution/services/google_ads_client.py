# ads_attribution/services/google_ads_client.py
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import grpc
from django.conf import settings
from google.ads.googleads.client import GoogleAdsClient
from google.ads.googleads.errors import GoogleAdsException
from google.oauth2.credentials import Credentials

from .oauth import redact

logger = logging.getLogger(__name__)

# gRPC codes meaning "this API version is not served", so the next one is tried
_VERSION_STATUS_CODES = (grpc.StatusCode.UNIMPLEMENTED, grpc.StatusCode.NOT_FOUND)


class GoogleAdsError(Exception):
    def __init__(self, message, codes=None, api_version=None):
        super().__init__(redact(message))
        self.message = redact(message)
        self.codes = list(codes or [])
        self.api_version = api_version

    def has_code(self, code: str) -> bool:
        return any(code in c for c in self.codes)


class ApiVersionUnavailable(GoogleAdsError):
    pass


@dataclass
class UploadOutcome:
    # input index -> error text; an index absent here succeeded
    item_errors: Dict[int, str] = field(default_factory=dict)
    body: str = ""
    api_version: str = ""
    http_status: int = 200


def error_codes(errors) -> List[str]:
    """['conversion_upload_error.CLICK_CONVERSION_ALREADY_EXISTS', ...] from GoogleAdsFailure.errors."""
    codes = []
    for err in errors or []:
        kind = type(err.error_code).pb(err.error_code).WhichOneof("error_code")
        if not kind:
            continue
        value = getattr(err.error_code, kind)
        codes.append(f"{kind}.{getattr(value, 'name', value)}")
    return codes


def _failure_text(failure) -> str:
    parts = []
    for err in getattr(failure, "errors", None) or []:
        parts.append(err.message)
    return "; ".join(parts)


class GoogleAds:
    """
    Thin wrapper over the google-ads SDK for one customer account.
    Every call walks GOOGLE_ADS_API_VERSIONS in order and moves on when the
    installed SDK or the API does not serve a version; any other failure raises
    GoogleAdsError. Callers only ever see rows, dicts and resource names.
    """

    def __init__(self, access_token: str, customer_id: str, login_customer_id: Optional[str] = None,
                 developer_token: Optional[str] = None, api_versions: Optional[List[str]] = None):
        developer_token = developer_token or settings.GOOGLE_ADS_DEVELOPER_TOKEN
        if not developer_token:
            raise GoogleAdsError("Missing GOOGLE_ADS_DEVELOPER_TOKEN")
        self.customer_id = str(customer_id)
        self.api_versions = list(api_versions or settings.GOOGLE_ADS_API_VERSIONS)
        self.api_version = ""

        self.client = GoogleAdsClient(
            credentials=Credentials(token=access_token),
            developer_token=developer_token,
            login_customer_id=login_customer_id or None,
            use_proto_plus=True,
        )

    # -- version fallthrough ------------------------------------------------

    def _service(self, name: str, version: str):
        try:
            return self.client.get_service(name, version=version)
        except ValueError as e:
            raise ApiVersionUnavailable(f"{name} not available in SDK for {version}: {e}", api_version=version)

    def _with_versions(self, call, what: str):
        last_error = None
        for version in self.api_versions:
            try:
                result = call(version)
            except ApiVersionUnavailable as e:
                last_error = e
                continue
            except GoogleAdsException as ex:
                codes = error_codes(getattr(ex.failure, "errors", None))
                status = ex.error.code() if hasattr(ex.error, "code") else None
                if status in _VERSION_STATUS_CODES:
                    last_error = ApiVersionUnavailable(_failure_text(ex.failure) or str(status), codes, version)
                    continue
                raise GoogleAdsError(
                    f"{what} failed: {_failure_text(ex.failure) or ex.error}", codes, version
                ) from ex
            except grpc.RpcError as ex:
                status = ex.code() if hasattr(ex, "code") else None
                if status in _VERSION_STATUS_CODES:
                    last_error = ApiVersionUnavailable(str(status), [getattr(status, "name", "")], version)
                    continue
                details = ex.details() if hasattr(ex, "details") else str(ex)
                raise GoogleAdsError(
                    f"{what} failed: {details}", [getattr(status, "name", "UNKNOWN")], version
                ) from ex
            self.api_version = version
            return result
        logger.warning("%s: no usable API version among %s", what, self.api_versions)
        raise ApiVersionUnavailable(
            f"{what} failed: no usable API version ({last_error.message if last_error else 'none configured'})",
            last_error.codes if last_error else [],
            last_error.api_version if last_error else None,
        )

    # -- reporting -------------------------------------------------------------

    def search(self, query: str) -> list:
        def call(version):
            service = self._service("GoogleAdsService", version)
            request = self.client.get_type("SearchGoogleAdsStreamRequest", version=version)
            request.customer_id = self.customer_id
            request.query = query
            rows = []
            for batch in service.search_stream(request=request):
                rows.extend(batch.results)
            return rows

        return self._with_versions(call, "search")

    # -- conversions -----------------------------------------------------------

    def upload_click_conversions(self, conversions: List[dict], validate_only: bool = False) -> UploadOutcome:
        """
        `conversions` are PostbackJob.as_click_conversion() dicts. Partial failure is
        on, so per-item errors come back keyed by their input index.
        """
        def call(version):
            service = self._service("ConversionUploadService", version)
            request = self.client.get_type("UploadClickConversionsRequest", version=version)
            request.customer_id = self.customer_id
            request.partial_failure = True
            request.validate_only = bool(validate_only)
            for item in conversions:
                cc = self.client.get_type("ClickConversion", version=version)
                setattr(cc, item["click_id_type"], item["click_id_value"])
                cc.conversion_action = item["conversion_action"]
                cc.conversion_date_time = item["conversion_date_time"]
                cc.conversion_value = float(item["conversion_value"])
                cc.currency_code = item["currency_code"]
                cc.order_id = str(item["order_id"])
                request.conversions.append(cc)
            response = service.upload_click_conversions(request=request)
            return self._read_upload_response(response, version)

        return self._with_versions(call, "upload_click_conversions")

    def _read_upload_response(self, response, version) -> UploadOutcome:
        item_errors = {}
        partial = getattr(response, "partial_failure_error", None)
        if partial and partial.code != 0:
            failure_type = type(self.client.get_type("GoogleAdsFailure", version=version))
            for detail in partial.details:
                failure = failure_type.deserialize(detail.value)
                for err in failure.errors:
                    path = err.location.field_path_elements
                    if not path:
                        continue
                    index = path[0].index
                    text = f"{'/'.join(error_codes([err]))}: {err.message}"
                    item_errors[index] = f"{item_errors[index]}; {text}" if index in item_errors else text
        try:
            body = type(response).to_json(response)
        except (TypeError, AttributeError):
            body = str(response)
        return UploadOutcome(item_errors=item_errors, body=redact(body)[:4000], api_version=version)

    def create_conversion_action(self, name: str, category: str) -> str:
        def call(version):
            service = self._service("ConversionActionService", version)
            operation = self.client.get_type("ConversionActionOperation", version=version)
            action = operation.create
            action.name = name
            action.type_ = self.client.get_type("ConversionActionTypeEnum", version=version).ConversionActionType.UPLOAD_CLICKS
            action.category = getattr(
                self.client.get_type("ConversionActionCategoryEnum", version=version).ConversionActionCategory, category
            )
            action.status = self.client.get_type("ConversionActionStatusEnum", version=version).ConversionActionStatus.ENABLED
            action.value_settings.always_use_default_value = False
            response = service.mutate_conversion_actions(customer_id=self.customer_id, operations=[operation])
            return response.results[0].resource_name

        return self._with_versions(call, "create_conversion_action")

