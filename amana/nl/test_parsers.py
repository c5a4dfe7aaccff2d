from datetime import date, time

from amana.nl import parsers

# Sunday
TODAY = date(2026, 10, 18)


def test_fold_strips_accents_and_lowercases() -> None:
    assert parsers.fold("Amanhã ÀS 10h") == "amanha as 10h"


def test_relative_and_weekday_dates() -> None:
    assert parsers.parse_dates("amanhã", TODAY) == [date(2026, 10, 19)]
    assert parsers.parse_dates("hoje", TODAY) == [TODAY]
    assert parsers.parse_dates("depois de amanhã", TODAY) == [date(2026, 10, 20)]
    assert parsers.parse_dates("na sexta-feira", TODAY) == [date(2026, 10, 23)]
    # Same weekday as today means next week.
    assert parsers.parse_dates("domingo", TODAY) == [date(2026, 10, 25)]


def test_numeric_dates_roll_forward() -> None:
    assert parsers.parse_dates("25/12", TODAY) == [date(2026, 12, 25)]
    assert parsers.parse_dates("10/01", TODAY) == [date(2027, 1, 10)]
    assert parsers.parse_dates("05/11/2027", TODAY) == [date(2027, 11, 5)]
    assert parsers.parse_dates("2026-11-02", TODAY) == [date(2026, 11, 2)]
    assert parsers.parse_dates("dia 5", TODAY) == [date(2026, 11, 5)]
    assert parsers.parse_dates("31/02", TODAY) == []


def test_multiple_dates_are_reported_in_order() -> None:
    assert parsers.parse_dates("amanhã ou sexta", TODAY) == [date(2026, 10, 19), date(2026, 10, 23)]


def test_time_range() -> None:
    span = parsers.parse_times("amanhã das 10h às 11h")
    assert span == parsers.TimeSpan(time(10, 0), time(11, 0))
    span = parsers.parse_times("de 9:30 até 10:15")
    assert span == parsers.TimeSpan(time(9, 30), time(10, 15))


def test_single_times() -> None:
    assert parsers.parse_times("às 15h").start == time(15, 0)
    assert parsers.parse_times("às 14h30").start == time(14, 30)
    assert parsers.parse_times("ao meio-dia").start == time(12, 0)
    assert parsers.parse_times("às 8h da noite").start == time(20, 0)


def test_bare_numbers_need_allow_bare() -> None:
    assert parsers.parse_times("10") == parsers.TimeSpan()
    assert parsers.parse_times("10", allow_bare=True).start == time(10, 0)


def test_dates_are_not_read_as_times() -> None:
    assert parsers.parse_times("25/12 às 9h").start == time(9, 0)
    assert parsers.parse_times("25/12") == parsers.TimeSpan()


def test_counts() -> None:
    assert parsers.parse_count("leia meus dois últimos emails") == 2
    assert parsers.parse_count("mostre 3 compromissos") == 3
    assert parsers.parse_count("leia meu primeiro e-mail") == 1
    assert parsers.parse_count("leia meus emails") is None
    assert parsers.parse_count("às 10h") is None


def test_count_needs_a_counted_noun_unless_asked() -> None:
    assert parsers.parse_count("mostre minha agenda dos próximos 30 dias") is None
    assert parsers.parse_count("leia os emails do projeto 3") is None
    assert parsers.parse_count("leia os 2 e-mails mais recentes") == 2
    assert parsers.parse_count("mostre os próximos três eventos") == 3
    assert parsers.parse_count("3", allow_bare=True) == 3
    assert parsers.parse_count("quero ver 4", allow_bare=True) == 4
    assert parsers.parse_count("às 10h", allow_bare=True) is None


def test_emails_and_only_me() -> None:
    assert parsers.parse_emails("ana@example.com, <bob@exemplo.com.br>; ana@EXAMPLE.com") == [
        "ana@example.com",
        "bob@exemplo.com.br",
    ]
    assert parsers.parse_emails("Rafael") == []
    assert parsers.says_only_me("só eu")
    assert parsers.says_only_me("ninguém, apenas eu")
    assert not parsers.says_only_me("eu e a Ana")


def test_memory_content_and_hashtags() -> None:
    assert parsers.parse_memory_content("Registre que o dia está bonito") == "o dia está bonito"
    assert parsers.parse_memory_content("anote na memória: comprar pão") == "comprar pão"
    assert parsers.parse_memory_content("o dia está bonito") is None
    assert parsers.parse_hashtags("ideia #trabalho #Casa #trabalho") == ["trabalho", "Casa"]


def test_mail_query() -> None:
    assert parsers.parse_mail_query("leia meus e-mails não lidos") == "is:unread"
    assert parsers.parse_mail_query("e-mails importantes de chefe@empresa.com") == (
        "label:important from:chefe@empresa.com"
    )
    assert parsers.parse_mail_query("leia meus e-mails") is None


def test_cancel_and_yes_no() -> None:
    assert parsers.is_cancel("cancelar")
    assert parsers.is_cancel("pode cancelar isso")
    assert not parsers.is_cancel("para amanhã")
    assert parsers.parse_yes_no("Sim, pode enviar") is True
    assert parsers.parse_yes_no("não") is False
    assert parsers.parse_yes_no("talvez") is None


def test_free_text_cues() -> None:
    assert parsers.parse_title('reunião "Alinhamento X" amanhã') == "Alinhamento X"
    assert parsers.parse_title("reunião com título Revisão trimestral amanhã") == "Revisão trimestral"
    assert parsers.parse_subject("assunto: Relatório, dizendo que segue anexo") == "Relatório"
    assert parsers.parse_body("assunto: Relatório, dizendo que segue anexo") == "segue anexo"
    assert parsers.parse_body("mensagem: até amanhã") == "até amanhã"
    assert parsers.parse_body("envie a mensagem para ana") is None
