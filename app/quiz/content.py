# app/quiz/content.py
"""
Quiz copy (PT-BR) and the per-session content resolver.

The table is static; `get_personalized_content` substitutes the lead's
name and picks branch-specific variants for the testimonial, promise and
offer steps.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from app.quiz.state import QuizState
from app.quiz.steps import (
    AgeRange,
    Conhecimento,
    Consequencia,
    Desejo,
    Diagnostico,
    Direcionamento,
    Horas,
    Impacto,
    MicroCompromisso,
    Remedios,
    Ansiedade,
    StepType,
)


@dataclass(frozen=True)
class QuizOption:
    """An option for choice-type steps."""
    id: str
    label: str
    value: str
    auto_advance: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "value": self.value,
            "autoAdvance": self.auto_advance,
        }


@dataclass(frozen=True)
class StepRules:
    required: bool = False
    min_selections: Optional[int] = None
    max_selections: Optional[int] = None

    def to_dict(self) -> dict:
        result: Dict[str, Any] = {"required": self.required}
        if self.min_selections is not None:
            result["minSelections"] = self.min_selections
        if self.max_selections is not None:
            result["maxSelections"] = self.max_selections
        return result


@dataclass(frozen=True)
class QuizStep:
    """Display content for one step."""
    id: int
    type: Optional[StepType]
    title: str
    content: Optional[str] = None
    options: List[QuizOption] = field(default_factory=list)
    validation: Optional[StepRules] = None

    def to_dict(self) -> dict:
        result: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value if self.type else None,
            "title": self.title,
        }
        if self.content is not None:
            result["content"] = self.content
        if self.options:
            result["options"] = [o.to_dict() for o in self.options]
        if self.validation is not None:
            result["validation"] = self.validation.to_dict()
        return result


def _single(value: str, label: str) -> QuizOption:
    return QuizOption(id=value, label=label, value=value, auto_advance=True)


def _multi(value: str, label: str) -> QuizOption:
    return QuizOption(id=value, label=label, value=value)


_AT_LEAST_ONE = StepRules(min_selections=1)


# =============================================================================
# STEP CONTENT TABLE
# =============================================================================

QUIZ_STEPS: Dict[int, QuizStep] = {
    1: QuizStep(
        id=1,
        type=StepType.PRESENTATION,
        title="Durma naturalmente e acorde cheio de energia em apenas 7 dias",
        content="Descubra se você pode eliminar a insônia naturalmente (Questionário de 1 minuto).",
    ),
    2: QuizStep(
        id=2,
        type=StepType.SINGLE_CHOICE,
        title="Qual é a sua faixa etária?",
        options=[
            _single(AgeRange.AGE_18_28.value, "18 a 28 anos"),
            _single(AgeRange.AGE_29_38.value, "29 a 38 anos"),
            _single(AgeRange.AGE_39_49.value, "39 a 49 anos"),
            _single(AgeRange.AGE_50_PLUS.value, "50 anos ou mais"),
        ],
    ),
    3: QuizStep(
        id=3,
        type=StepType.PRESENTATION,
        title="Você não está sozinho(a)",
        content="Mais de 1.000 pessoas já voltaram a dormir naturalmente com este método.",
    ),
    4: QuizStep(
        id=4,
        type=StepType.SINGLE_CHOICE,
        title="Qual situação descreve melhor o seu sono?",
        options=[
            _single(Diagnostico.DEMORO.value, "Demoro mais de 30 min para adormecer"),
            _single(Diagnostico.ACORDO_VARIAS.value, "Acordo várias vezes durante a noite"),
            _single(Diagnostico.ACORDO_CANSADO.value, "Acordo cansado(a), mesmo dormindo 7-8h"),
            _single(Diagnostico.SEM_PROBLEMAS.value, "Não tenho problemas para dormir"),
        ],
    ),
    5: QuizStep(
        id=5,
        type=StepType.SINGLE_CHOICE,
        title="Quantas horas você dorme por noite?",
        options=[
            _single(Horas.LESS_THAN_5.value, "Menos de 5 horas"),
            _single(Horas.FROM_5_TO_6.value, "5 a 6 horas"),
            _single(Horas.FROM_7_TO_8.value, "7 a 8 horas"),
            _single(Horas.MORE_THAN_8.value, "Mais de 8 horas"),
        ],
    ),
    6: QuizStep(
        id=6,
        type=StepType.FORM,
        title="Para personalizar seus resultados...",
        content="Precisamos de algumas informações básicas:",
        validation=StepRules(required=True),
    ),
    7: QuizStep(
        id=7,
        type=StepType.SINGLE_CHOICE,
        title="Você já tentou remédios para dormir?",
        options=[
            _single(Remedios.FREQUENTE.value, "Uso frequentemente (melatonina, rivotril, etc.)"),
            _single(Remedios.TENTEI_NAO_RESOLVEU.value, "Já tentei mas não resolveu"),
            _single(Remedios.PENSEI.value, "Já pensei em tentar"),
            _single(Remedios.NUNCA.value, "Nunca tentei"),
        ],
    ),
    8: QuizStep(
        id=8,
        type=StepType.SINGLE_CHOICE,
        title="Com que frequência você sente ansiedade?",
        options=[
            _single(Ansiedade.SEMPRE.value, "Sempre"),
            _single(Ansiedade.MUITAS.value, "Muitas vezes"),
            _single(Ansiedade.RARAMENTE.value, "Raramente"),
            _single(Ansiedade.NUNCA.value, "Nunca"),
        ],
    ),
    9: QuizStep(
        id=9,
        type=StepType.MULTIPLE_CHOICE,
        title="Como a falta de sono tem afetado você?",
        content="Selecione todas as opções que se aplicam:",
        options=[
            _multi(Impacto.CONCENTRACAO.value, "Dificuldade de concentração"),
            _multi(Impacto.MEMORIA.value, "Problemas de memória"),
            _multi(Impacto.HUMOR.value, "Mudanças de humor/irritabilidade"),
            _multi(Impacto.ENERGIA.value, "Falta de energia durante o dia"),
            _multi(Impacto.TRABALHO.value, "Queda na produtividade no trabalho"),
            _multi(Impacto.RELACIONAMENTOS.value, "Impacto nos relacionamentos"),
        ],
        validation=_AT_LEAST_ONE,
    ),
    10: QuizStep(
        id=10,
        type=StepType.MULTIPLE_CHOICE,
        title="Quais consequências mais te preocupam?",
        content="Selecione suas principais preocupações:",
        options=[
            _multi(Consequencia.SAUDE_MENTAL.value, "Problemas de saúde mental (depressão, ansiedade)"),
            _multi(Consequencia.SISTEMA_IMUNE.value, "Sistema imunológico enfraquecido"),
            _multi(Consequencia.GANHO_PESO.value, "Ganho de peso"),
            _multi(Consequencia.ENVELHECIMENTO.value, "Envelhecimento precoce"),
            _multi(Consequencia.PERFORMANCE.value, "Queda na performance física/mental"),
            _multi(Consequencia.DOENCAS.value, "Risco de doenças crônicas"),
        ],
        validation=_AT_LEAST_ONE,
    ),
    11: QuizStep(
        id=11,
        type=StepType.MULTIPLE_CHOICE,
        title="O que você mais deseja alcançar?",
        content="Selecione seus objetivos principais:",
        options=[
            _multi(Desejo.ADORMECER_RAPIDO.value, "Adormecer rapidamente (em até 10 minutos)"),
            _multi(Desejo.SONO_PROFUNDO.value, "Ter um sono profundo e reparador"),
            _multi(Desejo.ACORDAR_DISPOSTO.value, "Acordar disposto(a) e com energia"),
            _multi(Desejo.PARAR_REMEDIOS.value, "Parar de depender de remédios"),
            _multi(Desejo.REDUZIR_ANSIEDADE.value, "Reduzir a ansiedade naturalmente"),
            _multi(Desejo.MELHORAR_HUMOR.value, "Melhorar o humor e disposição"),
        ],
        validation=_AT_LEAST_ONE,
    ),
    12: QuizStep(
        id=12,
        type=StepType.PRESENTATION,
        title="Depoimentos Reais",
        content=(
            '"Em apenas 5 dias consegui dormir sem melatonina pela primeira vez em 2 anos. '
            'O método é simples e realmente funciona!" - Maria, 34 anos'
        ),
    ),
    13: QuizStep(
        id=13,
        type=StepType.SINGLE_CHOICE,
        title="Quanto você conhece sobre higiene do sono?",
        options=[
            _single(Conhecimento.NADA.value, "Nada, é a primeira vez que ouço falar"),
            _single(Conhecimento.POUCO.value, "Já ouvi falar, mas não sei aplicar"),
            _single(Conhecimento.TENTEI.value, "Já tentei algumas técnicas sem sucesso"),
        ],
    ),
    14: QuizStep(
        id=14,
        type=StepType.SINGLE_CHOICE,
        title="O que você prefere para melhorar seu sono?",
        options=[
            _single(Direcionamento.PROFUNDO.value, "Programa completo e aprofundado"),
            _single(Direcionamento.RAPIDO_SEM_REMEDIO.value, "Solução rápida sem remédios"),
            _single(Direcionamento.ENERGIA.value, "Foco em acordar com mais energia"),
            _single(Direcionamento.REDUZIR_ANSIEDADE.value, "Reduzir ansiedade para dormir melhor"),
        ],
    ),
    15: QuizStep(
        id=15,
        type=StepType.PRESENTATION,
        title="{{nome}}, sua jornada para dormir melhor começa agora",
        content="Baseado nas suas respostas, identificamos exatamente o que está sabotando seu sono.",
    ),
    16: QuizStep(
        id=16,
        type=StepType.SINGLE_CHOICE,
        title="Como você se sente sobre mudar seus hábitos de sono?",
        options=[
            _single(MicroCompromisso.DECIDIDO.value, "Estou decidido(a) a mudar agora"),
            _single(MicroCompromisso.MUDAR_HABITOS.value, "Quero mudar mas preciso de ajuda"),
            _single(MicroCompromisso.MEDO_FALHAR.value, "Tenho medo de tentar e falhar novamente"),
        ],
    ),
    17: QuizStep(
        id=17,
        type=StepType.LOADING,
        title="Estamos analisando suas respostas… ⏳",
        content="Preparando seu plano personalizado para dormir naturalmente...",
    ),
    18: QuizStep(
        id=18,
        type=StepType.PRESENTATION,
        title="{{nome}}, seu plano personalizado para dormir naturalmente está pronto!",
        content="Descubra o método que já ajudou mais de 1.000 pessoas a voltarem a dormir naturalmente.",
    ),
}


# =============================================================================
# BRANCH VARIANTS
# =============================================================================

TESTIMONIAL_HEAVY_REMEDIOS = (
    '"Consegui parar com a melatonina em 1 semana! Agora durmo naturalmente e acordo '
    'muito mais descansada." - Ana, 29 anos'
)
TESTIMONIAL_HIGH_ANSIEDADE = (
    '"A ansiedade era o que mais atrapalhava meu sono. Com as técnicas do método, '
    'consegui relaxar e dormir profundamente." - Carlos, 42 anos'
)

PROMISE_HEAVY_REMEDIOS = (
    "Identificamos que você pode parar de depender de remédios para dormir. "
    "Vamos mostrar exatamente como fazer isso de forma segura e natural."
)
PROMISE_HIGH_ANSIEDADE = (
    "A ansiedade está sabotando seu sono. Nosso método inclui técnicas específicas "
    "para acalmar sua mente antes de dormir."
)
PROMISE_EXPERIENCED = (
    "Você já tentou outras técnicas sem sucesso. Nosso método é diferente - "
    "baseado em ciência e resultados comprovados."
)

OFFER_DESCRIPTIONS: Dict[str, str] = {
    Direcionamento.RAPIDO_SEM_REMEDIO.value: "Solução rápida para dormir sem remédios",
    Direcionamento.ENERGIA.value: "Programa focado em acordar com energia",
    Direcionamento.REDUZIR_ANSIEDADE.value: "Método para reduzir ansiedade e melhorar o sono",
}
DEFAULT_OFFER_DESCRIPTION = "Método completo para dormir naturalmente"


# =============================================================================
# STATIC COPY
# =============================================================================

CTA_TEXTS = {
    "primary": "Continuar",
    "final": "Quero dormir naturalmente agora",
    "back": "Voltar",
    "loading": "Aguarde...",
}

VALIDATION_MESSAGES = {
    "required": "Este campo é obrigatório",
    "email": "Por favor, insira um email válido",
    "name": "Nome deve ter pelo menos 2 caracteres",
    "consent": "É necessário concordar com o tratamento de dados para continuar",
    "minSelections": "Por favor, selecione pelo menos uma opção",
    "maxSelections": "Você pode selecionar no máximo {{max}} opções",
}

LEAD_FORM = {
    "nome": {
        "label": "Seu nome completo",
        "placeholder": "Digite seu nome",
        "type": "text",
        "required": True,
    },
    "email": {
        "label": "Seu melhor email",
        "placeholder": "Digite seu email",
        "type": "email",
        "required": True,
    },
    "consent": {
        "label": "Concordo com o tratamento de dados conforme a Política de Privacidade.",
        "type": "checkbox",
        "required": True,
        "linkText": "Política de Privacidade",
        "linkUrl": "/privacy",
    },
    # hidden bot trap, must stay empty
    "website": {
        "label": "",
        "type": "text",
        "required": False,
        "hidden": True,
    },
}

OFFER_DETAILS = {
    "price": "R$ 67",
    "originalPrice": "R$ 197",
    "discount": "66% OFF",
    "guarantee": "30 dias de garantia incondicional",
    "deliverables": [
        "✅ Método Lux completo (7 dias)",
        "✅ Kit de ferramentas práticas",
        "✅ Plano personalizado baseado no seu perfil",
        "✅ Checklist de higiene do sono",
        "✅ Técnicas de relaxamento",
    ],
    "bonus": [
        "🎁 BÔNUS: Guia de suplementos naturais",
        "🎁 BÔNUS: Playlist para relaxamento",
    ],
}

UNKNOWN_STEP_TITLE = "Unknown step"

_NOME_TOKEN = re.compile(r"\{\{nome\}\}")


# =============================================================================
# RESOLVER
# =============================================================================


def interpolate(text: Optional[str], state: QuizState) -> Optional[str]:
    """Replace every {{nome}} token when the lead's name is known."""
    if text is None or not state.nome:
        return text
    return _NOME_TOKEN.sub(lambda _m: state.nome, text)


def get_step_content(step: int) -> QuizStep:
    base = QUIZ_STEPS.get(step)
    if base is None:
        return QuizStep(id=step, type=None, title=UNKNOWN_STEP_TITLE)
    return base


def get_personalized_content(step: int, state: QuizState) -> QuizStep:
    """
    Content for `step` as this session should see it.

    Pure: the shared table is never modified, a new QuizStep is returned.
    """
    base = get_step_content(step)
    content = base.content

    if step == 12:
        if state.flags.branch_heavy_remedios:
            content = TESTIMONIAL_HEAVY_REMEDIOS
        elif state.flags.branch_high_ansiedade:
            content = TESTIMONIAL_HIGH_ANSIEDADE

    elif step == 15:
        if state.flags.branch_heavy_remedios:
            content = PROMISE_HEAVY_REMEDIOS
        elif state.flags.branch_high_ansiedade:
            content = PROMISE_HIGH_ANSIEDADE
        elif state.flags.experienced:
            content = PROMISE_EXPERIENCED

    elif step == 18:
        description = OFFER_DESCRIPTIONS.get(state.direcionamento or "", DEFAULT_OFFER_DESCRIPTION)
        content = f"{description}. Acesso imediato por apenas {OFFER_DETAILS['price']}."

    return replace(
        base,
        title=interpolate(base.title, state),
        content=interpolate(content, state),
    )


def option_values(step: int) -> List[str]:
    return [o.value for o in get_step_content(step).options]
