"""ECOMMIND — Bling API v3 Payload Schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class _BlingModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class BlingNamed(_BlingModel):
    id: Optional[int] = None
    nome: Optional[str] = None
    descricao: Optional[str] = None


class BlingTributacao(_BlingModel):
    ncm: Optional[str] = None


class BlingProduct(_BlingModel):
    id: int
    codigo: Optional[str] = None
    descricao: Optional[str] = None
    descricaoComplementar: Optional[str] = None
    observacoes: Optional[str] = None
    tipo: Optional[str] = None
    situacao: Optional[str] = None
    preco: Optional[float] = None
    marca: Optional[str] = None
    categoria: Optional[BlingNamed] = None
    pesoLiquido: Optional[float] = None
    gtin: Optional[str] = None
    tributacao: Optional[BlingTributacao] = None
    dataInclusao: Optional[str] = None
    dataAlteracao: Optional[str] = None


class BlingContato(_BlingModel):
    id: Optional[int] = None
    nome: Optional[str] = None
    email: Optional[str] = None
    numeroDocumento: Optional[str] = None


class BlingDesconto(_BlingModel):
    valor: Optional[float] = None


class BlingTransporte(_BlingModel):
    frete: Optional[float] = None


class BlingParcela(_BlingModel):
    formaPagamento: Optional[BlingNamed] = None


class BlingOrderItem(_BlingModel):
    id: Optional[int] = None
    codigo: Optional[str] = None
    descricao: Optional[str] = None
    quantidade: float = 0
    valor: float = 0
    desconto: Optional[float] = None


class BlingOrder(_BlingModel):
    id: int
    numero: Optional[int | str] = None
    data: Optional[str] = None
    total: Optional[float] = None
    situacao: Optional[BlingNamed] = None
    loja: Optional[BlingNamed] = None
    contato: Optional[BlingContato] = None
    desconto: Optional[BlingDesconto] = None
    transporte: Optional[BlingTransporte] = None
    parcelas: List[BlingParcela] = []
    itens: List[BlingOrderItem] = []


class BlingPage(_BlingModel):
    data: List[dict] = []
    pagina: Optional[int] = None
    totalPaginas: Optional[int] = None
    totalItens: Optional[int] = None


# ── Webhooks ──

BlingWebhookTopic = Literal["orders", "products", "status", "stock"]


class BlingWebhookData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    type: str
    date: str


class BlingWebhook(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event: str
    data: BlingWebhookData
    signature: Optional[str] = None
