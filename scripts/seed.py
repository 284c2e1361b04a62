import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from datetime import date
from decimal import Decimal

from cortex.core.db import Base, SessionLocal, engine
from cortex.models import Client, Contract, DfcCategory, DfcEntry

CATEGORIES = [
    ("03", "Receitas Operacionais", "RECEITA"),
    ("03.01", "Receita de Serviços", "RECEITA"),
    ("03.01.01", "Fee Mensal", "RECEITA"),
    ("03.01.02", "Projetos Pontuais", "RECEITA"),
    ("03.02", "Receitas Financeiras", "RECEITA"),
    ("03.02.01", "Rendimentos de Aplicações", "RECEITA"),
    ("04", "Despesas Operacionais", "DESPESA"),
    ("04.01", "Pessoal", "DESPESA"),
    ("04.01.01", "Salários", "DESPESA"),
    ("04.01.02", "Benefícios", "DESPESA"),
    ("04.02", "Ferramentas e Software", "DESPESA"),
    ("04.02.01", "Licenças SaaS", "DESPESA"),
    ("04.03", "Administrativas", "DESPESA"),
    ("04.03.01", "Aluguel", "DESPESA"),
    ("04.03.02", "Contabilidade", "DESPESA"),
]

# categoria_id -> (base monthly amount, monthly growth)
MONTHLY_PLAN = {
    "03.01.01": (Decimal("180000"), Decimal("0.03")),
    "03.01.02": (Decimal("25000"), Decimal("0")),
    "03.02.01": (Decimal("1200"), Decimal("0")),
    "04.01.01": (Decimal("95000"), Decimal("0.01")),
    "04.01.02": (Decimal("14000"), Decimal("0")),
    "04.02.01": (Decimal("8500"), Decimal("0.02")),
    "04.03.01": (Decimal("12000"), Decimal("0")),
    "04.03.02": (Decimal("3500"), Decimal("0")),
}


def _month_start(months_back: int) -> date:
    today = date.today()
    index = today.year * 12 + (today.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def run() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(DfcCategory).first():
            print("Seed already applied")
            return

        db.add_all([DfcCategory(categoria_id=c, nome=n, tipo=t) for c, n, t in CATEGORIES])

        acme = Client(nome="Acme Varejo", cnpj="11.111.111/0001-11", cluster="Enterprise", responsavel="Ana")
        nova = Client(nome="Nova Fintech", cnpj="22.222.222/0001-22", cluster="Growth", responsavel="Bruno")
        loja = Client(nome="Loja Sol", cnpj="33.333.333/0001-33", status="inativo", cluster="SMB", responsavel="Carla")
        db.add_all([acme, nova, loja])
        db.flush()

        db.add_all(
            [
                Contract(client_id=acme.id, servico="Tráfego Pago", valor_recorrente=Decimal("90000"), squad="Alpha", data_inicio=_month_start(14)),
                Contract(client_id=nova.id, servico="Growth Marketing", valor_recorrente=Decimal("90000"), squad="Beta", data_inicio=_month_start(10)),
                Contract(
                    client_id=loja.id,
                    servico="Branding",
                    status="encerrado",
                    valor_pontual=Decimal("25000"),
                    squad="Gamma",
                    data_inicio=_month_start(8),
                    data_encerramento=_month_start(5),
                ),
            ]
        )

        tipos = {c: t for c, _, t in CATEGORIES}
        for months_back in range(11, -1, -1):
            due = _month_start(months_back).replace(day=10)
            step = 11 - months_back
            for categoria_id, (base, growth) in MONTHLY_PLAN.items():
                valor = (base * (1 + growth) ** step).quantize(Decimal("0.01"))
                # one-off spike so the analysis has an anomaly to report
                if categoria_id == "04.02.01" and months_back == 3:
                    valor *= 3
                db.add(
                    DfcEntry(
                        categoria_id=categoria_id,
                        tipo=tipos[categoria_id],
                        descricao=f"{categoria_id} {due:%m/%Y}",
                        valor_pago=valor,
                        data_vencimento=due,
                        client_id=acme.id if categoria_id == "03.01.01" else None,
                    )
                )

        db.commit()
        print("Seed complete")
    finally:
        db.close()


if __name__ == "__main__":
    run()
