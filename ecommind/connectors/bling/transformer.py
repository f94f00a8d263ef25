"""ECOMMIND — Bling → Canonical Transformer.

Pure mapping functions. Missing optional vendor fields map to None.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ecommind.connectors.bling.schemas import BlingOrder, BlingProduct

STATUS_MAP = {
    "Em aberto": "pending",
    "Em andamento": "processing",
    "Venda agendada": "scheduled",
    "Em produção": "processing",
    "Pronto para envio": "ready_to_ship",
    "Enviado": "shipped",
    "Entregue": "delivered",
    "Cancelado": "cancelled",
    "Devolvido": "returned",
}


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def channel_from_store(store_name: Optional[str]) -> str:
    """Infer the sales channel from the Bling store (loja) name."""
    if not store_name:
        return "bling"
    name = store_name.lower()
    if "mercado" in name or "livre" in name:
        return "meli"
    if "shopee" in name:
        return "shopee"
    if "amazon" in name:
        return "amazon"
    if "site" in name or "loja" in name:
        return "site"
    return "bling"


def map_product(product: BlingProduct, company_id: str) -> Dict[str, Any]:
    return {
        "company_id": company_id,
        "sku": product.codigo or str(product.id),
        "title": product.descricao or "",
        "description": product.descricaoComplementar or product.observacoes,
        "brand": product.marca,
        "category": product.categoria.descricao if product.categoria else None,
        "price": product.preco,
        "weight_kg": product.pesoLiquido / 1000 if product.pesoLiquido else None,
        "gtin": product.gtin,
        "ncm": product.tributacao.ncm if product.tributacao else None,
        "active": product.situacao == "Ativo",
        "channel": "bling",
        "external_id": str(product.id),
    }


def order_key(order: BlingOrder) -> str:
    return str(order.numero) if order.numero is not None else str(order.id)


def map_order(order: BlingOrder, company_id: str) -> Dict[str, Any]:
    status_name = order.situacao.nome if order.situacao else None
    contato = order.contato
    payment = None
    if order.parcelas and order.parcelas[0].formaPagamento:
        payment = order.parcelas[0].formaPagamento.nome or order.parcelas[0].formaPagamento.descricao
    return {
        "company_id": company_id,
        "order_id": order_key(order),
        "channel": channel_from_store(order.loja.nome if order.loja else None),
        "status": STATUS_MAP.get(status_name or "", "pending"),
        "order_date": _parse_date(order.data),
        "total_amount": order.total or 0.0,
        "shipping_cost": (order.transporte.frete if order.transporte else None) or 0.0,
        "discount": (order.desconto.valor if order.desconto else None) or 0.0,
        "buyer_name": contato.nome if contato else None,
        "buyer_email": contato.email if contato else None,
        "buyer_document": contato.numeroDocumento if contato else None,
        "payment_method": payment,
        "external_id": str(order.id),
    }


def map_order_items(order: BlingOrder, company_id: str) -> List[Dict[str, Any]]:
    items = []
    for index, item in enumerate(order.itens):
        discount = item.desconto or 0.0
        items.append(
            {
                "company_id": company_id,
                "order_id": order_key(order),
                "item_seq": index + 1,
                "sku": item.codigo,
                "title": item.descricao,
                "quantity": item.quantidade,
                "unit_price": item.valor,
                "discount": discount,
                "total": round(item.quantidade * item.valor - discount, 2),
                "external_item_id": str(item.id) if item.id is not None else None,
            }
        )
    return items
