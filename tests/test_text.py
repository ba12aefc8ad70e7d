# tests/test_text.py

from incident_desk.classification.domain import (
    Vocabulary,
    adaptive_threshold,
    contains_reference,
    contains_term,
    is_similar,
    normalize,
    similarity,
    tokenize,
)


def test_normalize_strips_accents_punctuation_and_case():
    assert normalize("¡Hola, cómo estás?") == "hola como estas"
    assert normalize("  Habitación_1203!!  ") == "habitacion1203"
    assert normalize("") == ""


def test_similarity_is_accent_insensitive():
    assert similarity("café", "cafe") >= 0.95
    assert similarity("café", "té") < 0.9
    assert similarity("", "") == 1.0


def test_short_tokens_need_near_exact_match():
    assert adaptive_threshold("it", "iu") == 0.9
    assert adaptive_threshold("internet", "interne") == 0.8
    assert not is_similar("it", "iu")
    assert is_similar("computadra", "computadora")


def test_tokenize_dedupes_in_order():
    assert tokenize("Fuga, fuga de AGUA") == ["fuga", "de", "agua"]


def test_contains_term_matches_whole_tokens_only():
    text = normalize("No hay internet en recepción")
    assert not contains_term(text, "it")
    assert contains_term(normalize("avisen a sistemas por favor"), "sistemas")
    assert contains_term(normalize("Llamen a Ama de Llaves"), "ama de llaves")


def test_contains_reference_allows_plural_forms():
    assert contains_reference(normalize("Llamen a los mantenimientos"), "mantenimiento")
    assert contains_reference(normalize("Que suba Room Service"), "room service")
    assert not contains_reference(normalize("Hay un item roto"), "it")
    assert not contains_reference(normalize("reseguridad"), "seguridad")
    assert not contains_reference(normalize("Falta mantequilla"), "mant")


def test_vocabulary_exact_and_phrase_matching():
    confirmation = Vocabulary(words=["listo", "ok"], phrases=["ya quedo"])
    assert confirmation.matches("Listo!")
    assert confirmation.matches("ya quedó, gracias")
    assert not confirmation.matches("todavía no")
    assert not confirmation.matches("")


def test_fuzzy_vocabulary_compares_whole_message():
    cancellation = Vocabulary(words=["cancelar"], phrases=["ya no es necesario"])
    assert cancellation.matches_fuzzy("cancelr")
    assert cancellation.matches_fuzzy("Ya no es necesario, gracias")
    assert not cancellation.matches_fuzzy("hay que cancelar la cena del evento")
