"""
Zoho Product Partners
======================

Finds the product behind a Deal and reads its ``Socios_del_Producto``
subform (partner name + ownership share).

Deals link their product inconsistently, so the product is resolved in
this order:

1. ``Product_Name`` / ``Product_ID`` / ``Products`` (object, list or id string)
2. ``Productos_de_interes``: a lookup object, a list, or a product number
   matched against product names of the deal's development
3. The lot part of ``Deal_Name`` ("Client - Lot 12"), matched against the
   development's products, else the development's first product
"""
from typing import Any, Dict, List, Optional

from integrations.zoho.client import ZohoClient, strip_zcrm_prefix
from models.zoho_models import Deal, ProductPartner
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

PARTNERS_SUBFORM = "Socios_del_Producto"

PARTNER_NAME_FIELDS = (
    "Nombre_del_Socio", "Socio", "Nombre", "Name", "Socio_del_Producto", "Contact_Name",
)
PARTNER_SHARE_FIELDS = (
    "Participaci_n", "Participación", "Participacion",
    "Participaci_n_del_Producto", "% Participación", "Porcentaje",
)


def _to_float(value: Any) -> float:
    try:
        return float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return 0.0


def partner_from_row(row: Dict[str, Any]) -> Optional[ProductPartner]:
    """Build a ProductPartner from one subform row; None when it has no name."""
    name = ""
    for field in PARTNER_NAME_FIELDS:
        value = row.get(field)
        if isinstance(value, str):
            name = value
        elif isinstance(value, dict):
            name = value.get("name") or ""
        if name:
            break
    if not name:
        return None

    share = 0.0
    for field in PARTNER_SHARE_FIELDS:
        if row.get(field) is not None:
            share = _to_float(row[field])
            if share > 0:
                break
    return ProductPartner(partner_name=name, share_percent=share)


def _product_id(field: Any) -> Optional[str]:
    """Extract a product id from a lookup object, a list of them, or a raw id."""
    if isinstance(field, list):
        if not field:
            return None
        first = field[0]
        if isinstance(first, dict):
            return str(first["id"]) if first.get("id") else None
        return first if isinstance(first, str) else None
    if isinstance(field, dict):
        for candidate in (field, field.get("product"), field.get("Product")):
            if isinstance(candidate, dict) and candidate.get("id"):
                return str(candidate["id"])
        return None
    if isinstance(field, str) and field.strip():
        return field.strip()
    return None


def _matches_number(product_name: str, number: str) -> bool:
    return (
        number in product_name
        or product_name.startswith(number + " ")
        or product_name.endswith(" " + number)
    )


class ProductPartnerResolver:
    """Resolves Deal → Product → partners through the Zoho API."""

    def __init__(self, client: ZohoClient = None):
        self.client = client or ZohoClient()

    async def _find_by_number(self, development: Optional[str], number: str) -> Optional[str]:
        if not development or not number:
            return None
        try:
            products = await self.client.search_products_by_development(development)
        except Exception as e:
            logger.error("Product search in %s for number %s failed: %s", development, number, e)
            return None
        for product in products:
            if _matches_number(product.get("Product_Name") or "", number):
                logger.info("Product %s matched number %s in %s", product.get("id"), number, development)
                return product.get("id")
        logger.warning("No product numbered %s in development %s", number, development)
        return None

    async def _find_by_deal_name(self, deal: Deal) -> Optional[str]:
        deal_name = deal.get("Deal_Name")
        development = deal.development
        if not deal_name or not development:
            return None
        parts = str(deal_name).split(" - ")
        if len(parts) < 2:
            return None
        lot = " - ".join(parts[1:]).strip().lower()
        try:
            products = await self.client.search_products_by_development(development)
        except Exception as e:
            logger.error("Product search in %s for %r failed: %s", development, lot, e)
            return None
        if not products:
            return None
        for product in products:
            if lot in (product.get("Product_Name") or "").lower():
                return product.get("id")
        logger.info("No product name matches %r; using first product of %s", lot, development)
        return products[0].get("id")

    async def _from_interest(self, deal: Deal) -> Optional[str]:
        interest = deal.data.get("Productos_de_interes")
        if not interest:
            return None
        if isinstance(interest, str):
            return await self._find_by_number(deal.development, interest.strip())
        if isinstance(interest, list):
            first = interest[0] if interest else None
            if isinstance(first, str):
                return await self._find_by_number(deal.development, first.strip())
            return _product_id(first)
        return _product_id(interest)

    async def resolve_product_id(self, deal: Deal) -> Optional[str]:
        direct = deal.get("Product_Name", "Product_ID", "Products")
        if direct:
            return _product_id(direct)
        product_id = await self._from_interest(deal)
        if product_id:
            return product_id
        return await self._find_by_deal_name(deal)

    async def get_partners(self, deal_id: str) -> List[ProductPartner]:
        """Partners of the deal's product; [] when anything along the way fails."""
        try:
            raw = await self.client.get_deal(deal_id)
            if not raw:
                logger.warning("Deal %s not found in Zoho", strip_zcrm_prefix(deal_id))
                return []
            product_id = await self.resolve_product_id(Deal(raw))
            if not product_id:
                logger.info("Deal %s has no resolvable product", deal_id)
                return []
            rows = await self.client.get_product_subform(product_id, PARTNERS_SUBFORM)
        except Exception as e:
            logger.error("Resolving product partners for deal %s failed: %s", deal_id, e)
            return []

        partners = []
        for row in rows:
            partner = partner_from_row(row)
            if partner is None:
                logger.debug("Subform row without partner name: %s", sorted(row))
                continue
            partners.append(partner)
        logger.info("Deal %s: %d partners on product %s", deal_id, len(partners), product_id)
        return partners
