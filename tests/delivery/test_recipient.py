from delivery.recipient import to_chat_address


def test_local_number_gets_country_code():
    assert to_chat_address("0501234567") == "972501234567@s.whatsapp.net"


def test_separators_are_removed():
    assert to_chat_address("050-123 4567") == "972501234567@s.whatsapp.net"


def test_international_number_drops_plus():
    assert to_chat_address("+44 7700-900123") == "447700900123@s.whatsapp.net"


def test_other_numbers_pass_through():
    assert to_chat_address("972501234567") == "972501234567@s.whatsapp.net"
