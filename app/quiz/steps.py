# app/quiz/steps.py
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


TOTAL_STEPS = 18
FIRST_STEP = 1
LEAD_STEP = 6
OFFER_STEP = TOTAL_STEPS


class StepType(str, Enum):
    PRESENTATION = "presentation"
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    FORM = "form"
    LOADING = "loading"


class AnswerField(str, Enum):
    """Every field of QuizState the presentation layer may write."""

    NOME = "nome"
    EMAIL = "email"
    CONSENT = "consent"
    IDADE = "idade"
    DIAGNOSTICO = "diagnostico"
    HORAS = "horas"
    REMEDIOS = "remedios"
    ANSIEDADE = "ansiedade"
    IMPACTOS = "impactos"
    CONSEQUENCIAS = "consequencias"
    DESEJOS = "desejos"
    CONHECIMENTO = "conhecimento"
    DIRECIONAMENTO = "direcionamento"
    MICRO = "micro"


# ----------------------------------------------------------------------
# Closed answer sets
# ----------------------------------------------------------------------


class AgeRange(str, Enum):
    AGE_18_28 = "18-28"
    AGE_29_38 = "29-38"
    AGE_39_49 = "39-49"
    AGE_50_PLUS = "50+"


class Diagnostico(str, Enum):
    DEMORO = "demoro"
    ACORDO_VARIAS = "acordo_varias"
    ACORDO_CANSADO = "acordo_cansado"
    SEM_PROBLEMAS = "sem_problemas"


class Horas(str, Enum):
    LESS_THAN_5 = "<5"
    FROM_5_TO_6 = "5-6"
    FROM_7_TO_8 = "7-8"
    MORE_THAN_8 = ">8"


class Remedios(str, Enum):
    FREQUENTE = "frequente"
    TENTEI_NAO_RESOLVEU = "tentei_nao_resolveu"
    PENSEI = "pensei"
    NUNCA = "nunca"


class Ansiedade(str, Enum):
    SEMPRE = "sempre"
    MUITAS = "muitas"
    RARAMENTE = "raramente"
    NUNCA = "nunca"


class Impacto(str, Enum):
    CONCENTRACAO = "concentracao"
    MEMORIA = "memoria"
    HUMOR = "humor"
    ENERGIA = "energia"
    TRABALHO = "trabalho"
    RELACIONAMENTOS = "relacionamentos"


class Consequencia(str, Enum):
    SAUDE_MENTAL = "saude_mental"
    SISTEMA_IMUNE = "sistema_imune"
    GANHO_PESO = "ganho_peso"
    ENVELHECIMENTO = "envelhecimento"
    PERFORMANCE = "performance"
    DOENCAS = "doencas"


class Desejo(str, Enum):
    ADORMECER_RAPIDO = "adormecer_rapido"
    SONO_PROFUNDO = "sono_profundo"
    ACORDAR_DISPOSTO = "acordar_disposto"
    PARAR_REMEDIOS = "parar_remedios"
    REDUZIR_ANSIEDADE = "reduzir_ansiedade"
    MELHORAR_HUMOR = "melhorar_humor"


class Conhecimento(str, Enum):
    NADA = "nada"
    POUCO = "pouco"
    TENTEI = "tentei"


class Direcionamento(str, Enum):
    PROFUNDO = "profundo"
    RAPIDO_SEM_REMEDIO = "rapido_sem_remedio"
    ENERGIA = "energia"
    REDUZIR_ANSIEDADE = "reduzir_ansiedade"


class MicroCompromisso(str, Enum):
    DECIDIDO = "decidido"
    MUDAR_HABITOS = "mudar_habitos"
    MEDO_FALHAR = "medo_falhar"


# ----------------------------------------------------------------------
# Step tables
# ----------------------------------------------------------------------

STEP_TYPES: Dict[int, StepType] = {
    1: StepType.PRESENTATION,      # intro
    2: StepType.SINGLE_CHOICE,     # idade
    3: StepType.PRESENTATION,      # social proof
    4: StepType.SINGLE_CHOICE,     # diagnostico
    5: StepType.SINGLE_CHOICE,     # horas
    6: StepType.FORM,              # lead + consent
    7: StepType.SINGLE_CHOICE,     # remedios
    8: StepType.SINGLE_CHOICE,     # ansiedade
    9: StepType.MULTIPLE_CHOICE,   # impactos
    10: StepType.MULTIPLE_CHOICE,  # consequencias
    11: StepType.MULTIPLE_CHOICE,  # desejos
    12: StepType.PRESENTATION,     # testimonials
    13: StepType.SINGLE_CHOICE,    # conhecimento
    14: StepType.SINGLE_CHOICE,    # direcionamento
    15: StepType.PRESENTATION,     # promise
    16: StepType.SINGLE_CHOICE,    # micro-commitment
    17: StepType.LOADING,
    18: StepType.PRESENTATION,     # offer
}

# Steps that never block forward navigation.
PRESENTATION_ONLY_STEPS = frozenset({1, 3, 12, 15, 17, 18})

# Which answer a question step collects.
STEP_FIELDS: Dict[int, AnswerField] = {
    2: AnswerField.IDADE,
    4: AnswerField.DIAGNOSTICO,
    5: AnswerField.HORAS,
    7: AnswerField.REMEDIOS,
    8: AnswerField.ANSIEDADE,
    9: AnswerField.IMPACTOS,
    10: AnswerField.CONSEQUENCIAS,
    11: AnswerField.DESEJOS,
    13: AnswerField.CONHECIMENTO,
    14: AnswerField.DIRECIONAMENTO,
    16: AnswerField.MICRO,
}

# Closed set behind every enumerated answer field.
FIELD_CHOICES: Dict[AnswerField, type[Enum]] = {
    AnswerField.IDADE: AgeRange,
    AnswerField.DIAGNOSTICO: Diagnostico,
    AnswerField.HORAS: Horas,
    AnswerField.REMEDIOS: Remedios,
    AnswerField.ANSIEDADE: Ansiedade,
    AnswerField.IMPACTOS: Impacto,
    AnswerField.CONSEQUENCIAS: Consequencia,
    AnswerField.DESEJOS: Desejo,
    AnswerField.CONHECIMENTO: Conhecimento,
    AnswerField.DIRECIONAMENTO: Direcionamento,
    AnswerField.MICRO: MicroCompromisso,
}

MULTI_SELECT_FIELDS = frozenset(
    {AnswerField.IMPACTOS, AnswerField.CONSEQUENCIAS, AnswerField.DESEJOS}
)


def step_type_for(step: int) -> Optional[StepType]:
    """Constant lookup; None means the step number is not configured."""
    return STEP_TYPES.get(step)


def field_for_step(step: int) -> Optional[AnswerField]:
    return STEP_FIELDS.get(step)
