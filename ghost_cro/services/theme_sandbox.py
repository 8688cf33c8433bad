"""
Ghost Sandbox theme management

Duplicates the live theme into an unpublished "sandbox", splices the
AI-generated fixes into its assets and hands back a preview link. The
merchant publishes the sandbox only after reviewing it.

The splice helpers (``append_css``, ``inject_markup`` ...) are pure string functions so they
can be exercised without Shopify; ``ThemeSandboxService`` does the I/O.
"""
import asyncio
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ghost_cro.config import get_settings
from ghost_cro.connectors.shopify import ShopifyAPIError, ShopifyClient
from ghost_cro.schemas import CodeFix, DeploymentResult
from ghost_cro.utils.logger import log

settings = get_settings()

CSS_ASSET_KEY = "assets/ghost-fixes.css"
JS_ASSET_KEY = "assets/ghost-fixes.js"
THEME_LAYOUT_KEY = "layout/theme.liquid"

CSS_INCLUDE = "{{ 'ghost-fixes.css' | asset_url | stylesheet_tag }}"
JS_INCLUDE = "<script src=\"{{ 'ghost-fixes.js' | asset_url }}\" defer></script>"

ADD_TO_CART_PATTERNS = (
    re.compile(r"(<button[^>]*type=[\"']submit[\"'][^>]*>[\s\S]*?</button>)", re.IGNORECASE),
    re.compile(r"(product-form__submit)", re.IGNORECASE),
    re.compile(r"({%[-\s]*form\s+['\"]product['\"][^%]*%}[\s\S]*?{%[-\s]*endform[-\s]*%})", re.IGNORECASE),
)

DESCRIPTION_PATTERNS = (
    re.compile(r"(product\.description[^}]*}})", re.IGNORECASE),
    re.compile(r"(class=[\"'][^\"']*description[^\"']*[\"'][\s\S]*?</div>)", re.IGNORECASE),
)

# Closing tags of the main content area, tried in order
END_PATTERNS = (
    re.compile(r"(</main>)", re.IGNORECASE),
    re.compile(r"({%[-\s]*endblock[-\s]*%})", re.IGNORECASE),
    re.compile(r"(</article>)", re.IGNORECASE),
    re.compile(r"(</section>)\s*\Z", re.IGNORECASE),
)

ERROR_PERMISSION_DENIED = "PERMISSION_DENIED"
ERROR_THEME_NOT_FOUND = "THEME_NOT_FOUND"
ERROR_API = "API_ERROR"
ERROR_RATE_LIMITED = "RATE_LIMITED"


class ThemeSandboxError(Exception):
    """Sandbox failure with a code the API maps onto an HTTP status"""

    def __init__(self, message: str, code: str = ERROR_API):
        super().__init__(message)
        self.code = code


def _translate_shopify_error(error: ShopifyAPIError, action: str) -> ThemeSandboxError:
    body = (error.body or "").lower()
    if error.status_code == 403 or "permission" in body or "scope" in body:
        return ThemeSandboxError(
            f"Permission denied when trying to {action}. "
            "Please ensure your Shopify app has the 'write_themes' scope enabled.",
            ERROR_PERMISSION_DENIED,
        )
    if error.status_code == 429:
        return ThemeSandboxError(
            "Rate limited by Shopify. Please wait a moment and try again.",
            ERROR_RATE_LIMITED,
        )
    return ThemeSandboxError(f"Failed to {action}: {error.body}", ERROR_API)


# ---- Pure splice helpers ---------------------------------------------

def liquid_marker(target_location: str) -> str:
    return f"{{%- comment -%}} Ghost CRO Fix: {target_location} {{%- endcomment -%}}"


def append_css(existing: Optional[str], fix: CodeFix) -> str:
    header = f"/* Ghost CRO Fix: {fix.target_location} */\n"
    if existing:
        return f"{existing}\n\n{header}{fix.optimized_code}"
    return f"/* Ghost CRO Optimizations */\n\n{header}{fix.optimized_code}"


def append_js(existing: Optional[str], fix: CodeFix) -> str:
    header = f"// Ghost CRO Fix: {fix.target_location}\n"
    if existing:
        return f"{existing}\n\n{header}{fix.optimized_code}"
    return f"// Ghost CRO Optimizations\n\n{header}{fix.optimized_code}"


def include_stylesheet(theme_liquid: str) -> Optional[str]:
    """theme.liquid with the fixes stylesheet before </head>; None if already included"""
    if "ghost-fixes.css" in theme_liquid:
        return None
    return theme_liquid.replace("</head>", f"  {CSS_INCLUDE}\n</head>", 1)


def include_script(theme_liquid: str) -> Optional[str]:
    """theme.liquid with the deferred fixes script before </body>; None if already included"""
    if "ghost-fixes.js" in theme_liquid:
        return None
    return theme_liquid.replace("</body>", f"  {JS_INCLUDE}\n</body>", 1)


def _insert_after(patterns, content: str, snippet: str) -> Optional[str]:
    for pattern in patterns:
        if pattern.search(content):
            return pattern.sub(lambda m: f"{m.group(1)}\n\n{snippet}", content, count=1)
    return None


def _insert_before_end(content: str, snippet: str) -> Optional[str]:
    for pattern in END_PATTERNS:
        if pattern.search(content):
            return pattern.sub(lambda m: f"\n{snippet}\n{m.group(1)}", content, count=1)
    return None


def inject_markup(content: str, fix: CodeFix) -> Tuple[str, bool]:
    """
    Splice a liquid/html fix into a template.

    Returns (new_content, already_applied). Placement: after the
    add-to-cart button or the description when the target location asks
    for it, else before the end of the main content, else at the end.
    """
    marker = liquid_marker(fix.target_location)
    if marker in content:
        return content, True

    snippet = f"{marker}\n{fix.optimized_code}"
    location = fix.target_location.lower()
    updated = None

    if "below add-to-cart" in location or "after add-to-cart" in location:
        updated = _insert_after(ADD_TO_CART_PATTERNS, content, snippet)
    elif "below description" in location or "after description" in location:
        updated = _insert_after(DESCRIPTION_PATTERNS, content, snippet)

    if updated is None:
        updated = _insert_before_end(content, snippet)

    if updated is None:
        updated = f"{content}\n\n{snippet}"

    return updated, False


def theme_preview_url(shop: str, theme_id: int) -> str:
    store = shop.replace(".myshopify.com", "")
    return f"https://{store}.myshopify.com/?preview_theme_id={theme_id}"


def sandbox_theme_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Ghost CRO - Optimized [{now.strftime('%b %d, %Y, %I:%M %p')}]"


# ---- Shopify I/O -------------------------------------------------------

class ThemeSandboxService:
    """Creates sandboxes and deploys fixes for one shop"""

    def __init__(self, client: ShopifyClient):
        self.client = client

    async def get_active_theme(self) -> Optional[Dict]:
        themes = await self.client.list_themes()
        return next((t for t in themes if t.get("role") == "main"), None)

    async def find_ghost_sandboxes(self) -> List[Dict]:
        themes = await self.client.list_themes()
        return [
            t for t in themes
            if "ghost cro" in (t.get("name") or "").lower() and t.get("role") == "unpublished"
        ]

    async def duplicate_theme(self, source_theme_id: int, name: Optional[str] = None) -> Dict:
        try:
            return await self.client.create_theme(
                name=name or sandbox_theme_name(),
                src=f"shopify://themes/{source_theme_id}",
                role="unpublished",
            )
        except ShopifyAPIError as e:
            raise _translate_shopify_error(e, "create sandbox theme") from e

    async def wait_for_theme_ready(self, theme_id: int) -> None:
        """Poll until Shopify finishes copying the theme files"""
        for _ in range(settings.theme_ready_max_attempts):
            themes = await self.client.list_themes()
            theme = next((t for t in themes if t.get("id") == theme_id), None)
            if theme and not theme.get("processing"):
                return
            await asyncio.sleep(settings.theme_ready_delay_seconds)

        raise ThemeSandboxError("Theme duplication timed out. Please try again.", ERROR_API)

    async def _put(self, theme_id: int, key: str, value: str) -> None:
        try:
            await self.client.put_asset(theme_id, key, value)
        except ShopifyAPIError as e:
            raise _translate_shopify_error(e, "update theme asset") from e

    async def _asset_value(self, theme_id: int, key: str) -> Optional[str]:
        asset = await self.client.get_asset(theme_id, key)
        return asset.get("value") if asset else None

    async def inject_code_fix(self, theme_id: int, fix: CodeFix) -> Dict:
        """
        Apply one fix to the sandbox.

        Returns {"success", "assetKey", "error"?}; failures are reported,
        not raised, so one bad fix does not sink the deploy.
        """
        try:
            if fix.type == "css":
                existing = await self._asset_value(theme_id, CSS_ASSET_KEY)
                await self._put(theme_id, CSS_ASSET_KEY, append_css(existing, fix))

                layout = await self._asset_value(theme_id, THEME_LAYOUT_KEY)
                updated_layout = include_stylesheet(layout) if layout else None
                if updated_layout:
                    await self._put(theme_id, THEME_LAYOUT_KEY, updated_layout)

                return {"success": True, "assetKey": CSS_ASSET_KEY}

            if fix.type == "javascript":
                existing = await self._asset_value(theme_id, JS_ASSET_KEY)
                await self._put(theme_id, JS_ASSET_KEY, append_js(existing, fix))

                layout = await self._asset_value(theme_id, THEME_LAYOUT_KEY)
                updated_layout = include_script(layout) if layout else None
                if updated_layout:
                    await self._put(theme_id, THEME_LAYOUT_KEY, updated_layout)

                return {"success": True, "assetKey": JS_ASSET_KEY}

            if fix.type in ("liquid", "html"):
                current = await self._asset_value(theme_id, fix.target_file) or ""
                updated, already_applied = inject_markup(current, fix)
                if already_applied:
                    return {
                        "success": True,
                        "assetKey": fix.target_file,
                        "error": "Fix already applied to this theme",
                    }
                await self._put(theme_id, fix.target_file, updated)
                return {"success": True, "assetKey": fix.target_file}

            return {"success": False, "assetKey": "", "error": f"Unsupported code type: {fix.type}"}

        except (ThemeSandboxError, ShopifyAPIError) as e:
            log.error(f"Failed to inject fix into {fix.target_file}: {str(e)}")
            return {"success": False, "assetKey": fix.target_file, "error": str(e)}

    async def deploy_fixes(self, fixes: List[Tuple[str, CodeFix]], existing_sandbox_id: Optional[int] = None) -> DeploymentResult:
        """
        Deploy fixes into an existing sandbox or a fresh copy of the live theme.

        Args:
            fixes: (friction point id, fix) pairs
            existing_sandbox_id: reuse this unpublished theme instead of duplicating
        """
        try:
            if existing_sandbox_id:
                theme_id = existing_sandbox_id
                themes = await self.client.list_themes()
                sandbox = next((t for t in themes if t.get("id") == existing_sandbox_id), None)
                theme_name = sandbox.get("name") if sandbox else "Ghost CRO Sandbox"
            else:
                active = await self.get_active_theme()
                if not active:
                    raise ThemeSandboxError("No active theme found", ERROR_THEME_NOT_FOUND)

                sandbox = await self.duplicate_theme(active["id"])
                theme_id = sandbox["id"]
                theme_name = sandbox.get("name")
                log.info(f"Created sandbox theme {theme_id} for {self.client.shop}")

                await self.wait_for_theme_ready(theme_id)

            assets_updated: List[str] = []
            errors: List[str] = []

            for fix_id, fix in fixes:
                result = await self.inject_code_fix(theme_id, fix)
                if result["success"]:
                    assets_updated.append(result["assetKey"])
                elif result.get("error"):
                    errors.append(f"Fix {fix_id}: {result['error']}")

            if errors and not assets_updated:
                return DeploymentResult(success=False, error="; ".join(errors), error_code=ERROR_API)

            log.info(f"Deployed {len(assets_updated)} fixes to sandbox {theme_id} ({len(errors)} failed)")

            return DeploymentResult(
                success=True,
                theme_id=theme_id,
                theme_name=theme_name,
                preview_url=theme_preview_url(self.client.shop, theme_id),
                assets_updated=assets_updated,
            )

        except ThemeSandboxError as e:
            log.error(f"Sandbox deployment failed for {self.client.shop}: {str(e)}")
            return DeploymentResult(success=False, error=str(e), error_code=e.code)
        except ShopifyAPIError as e:
            translated = _translate_shopify_error(e, "deploy sandbox")
            log.error(f"Sandbox deployment failed for {self.client.shop}: {str(translated)}")
            return DeploymentResult(success=False, error=str(translated), error_code=translated.code)

    async def publish_theme(self, theme_id: int) -> None:
        try:
            await self.client.update_theme(theme_id, role="main")
        except ShopifyAPIError as e:
            raise _translate_shopify_error(e, "publish theme") from e
        log.info(f"Published theme {theme_id} on {self.client.shop}")

    async def delete_sandbox(self, theme_id: int) -> bool:
        return await self.client.delete_theme(theme_id)
