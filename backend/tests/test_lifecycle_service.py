"""
Tests du service de cycle de vie des codes QR (SQLite en mémoire).
Couverture : génération, activation, assignation, scan, localisation, suivi.
"""

import re
import uuid
from unittest.mock import patch

import pytest

from app.services import lifecycle_service, tracking_store, user_service
from app.services.errors import (
    AlreadyOwnedError,
    DecodeError,
    InactiveTokenError,
    InvalidCoordinateError,
    InvalidCountError,
    NoInputProvidedError,
    NotOwnedError,
    PrincipalNotFoundError,
    StateConflictError,
    TokenNotFoundError,
)


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------

@pytest.fixture
def admin(user_factory):
    return user_factory(role="admin", name="Admin")


def make_active_token(db, issuer):
    token = lifecycle_service.generate_batch(db, 1, issuer.id).qr_codes[0]
    return lifecycle_service.toggle_active(db, token.id)


def make_owned_token(db, issuer, owner):
    token = make_active_token(db, issuer)
    return lifecycle_service.assign(db, token.id, owner.id)


# ----------------------------------------------------------------
# generate_batch
# ----------------------------------------------------------------

class TestGenerateBatch:
    def test_lot_valide(self, db_session, admin):
        result = lifecycle_service.generate_batch(db_session, 5, admin.id)

        assert result.count == 5
        for token in result.qr_codes:
            assert re.match(r"^[A-Z0-9]{16}$", token.code)
            assert token.qr_image.startswith("data:image/png;base64,")
            assert token.is_active is False
            assert token.owner_id is None
            assert token.issuer_id == admin.id
            assert token.status == "INACTIVE"
            assert token.history == []

    def test_codes_uniques_sur_plusieurs_lots(self, db_session, admin):
        codes = []
        for count in (10, 25, 15):
            codes += [t.code for t in lifecycle_service.generate_batch(db_session, count, admin.id).qr_codes]

        assert len(codes) == 50
        assert len(set(codes)) == 50

    @pytest.mark.parametrize("count", [0, -1, 101, None])
    def test_nombre_hors_bornes(self, db_session, admin, count):
        with pytest.raises(InvalidCountError, match="entre 1 et 100"):
            lifecycle_service.generate_batch(db_session, count, admin.id)

    def test_bornes_incluses(self, db_session, admin):
        assert lifecycle_service.generate_batch(db_session, 1, admin.id).count == 1
        assert lifecycle_service.generate_batch(db_session, 100, admin.id).count == 100

    def test_emetteur_inconnu(self, db_session):
        with pytest.raises(PrincipalNotFoundError):
            lifecycle_service.generate_batch(db_session, 1, uuid.uuid4())


# ----------------------------------------------------------------
# toggle_active
# ----------------------------------------------------------------

class TestToggleActive:
    def test_activation_puis_desactivation(self, db_session, admin):
        token = lifecycle_service.generate_batch(db_session, 1, admin.id).qr_codes[0]

        assert lifecycle_service.toggle_active(db_session, token.id).is_active is True
        assert lifecycle_service.toggle_active(db_session, token.id).is_active is False

    def test_desactivation_conserve_proprietaire_et_historique(self, db_session, admin, user_factory):
        owner = user_factory()
        token = make_owned_token(db_session, admin, owner)
        lifecycle_service.update_location(db_session, token.id, owner.id, 1, 2)

        result = lifecycle_service.toggle_active(db_session, token.id)

        assert result.is_active is False
        assert result.owner_id == owner.id
        assert len(result.history) == 1
        assert result.status == "INACTIVE"

    def test_code_introuvable(self, db_session):
        with pytest.raises(TokenNotFoundError):
            lifecycle_service.toggle_active(db_session, uuid.uuid4())


# ----------------------------------------------------------------
# assign
# ----------------------------------------------------------------

class TestAssign:
    def test_assignation_code_actif(self, db_session, admin, user_factory):
        owner = user_factory()
        token = make_active_token(db_session, admin)

        result = lifecycle_service.assign(db_session, token.id, owner.id)

        assert result.owner_id == owner.id
        assert result.status == "ASSIGNED"

    def test_code_inactif_toujours_refuse(self, db_session, admin, user_factory):
        owner = user_factory()
        token = lifecycle_service.generate_batch(db_session, 1, admin.id).qr_codes[0]

        with pytest.raises(StateConflictError):
            lifecycle_service.assign(db_session, token.id, owner.id)

    def test_code_desactive_apres_assignation_refuse(self, db_session, admin, user_factory):
        """Même déjà assigné, un code inactif ne peut pas être (ré)assigné."""
        owner = user_factory()
        token = make_owned_token(db_session, admin, owner)
        lifecycle_service.toggle_active(db_session, token.id)

        with pytest.raises(InactiveTokenError):
            lifecycle_service.assign(db_session, token.id, owner.id)

    def test_seconde_assignation_refusee(self, db_session, admin, user_factory):
        first, second = user_factory(), user_factory()
        token = make_owned_token(db_session, admin, first)

        with pytest.raises(AlreadyOwnedError):
            lifecycle_service.assign(db_session, token.id, second.id)

        assert lifecycle_service.get_token(db_session, token.id).owner_id == first.id

    def test_reassignation_meme_utilisateur_sans_effet(self, db_session, admin, user_factory):
        owner = user_factory()
        token = make_owned_token(db_session, admin, owner)

        result = lifecycle_service.assign(db_session, token.id, owner.id)
        assert result.owner_id == owner.id

    def test_course_perdue_remonte_already_owned(self, db_session, admin, user_factory):
        """Si l'UPDATE conditionnel perd la course, le second écrivain est rejeté."""
        winner, loser = user_factory(), user_factory()
        token = make_active_token(db_session, admin)

        original_set_owner = tracking_store.set_owner_if_unowned

        def concurrent_writer(db, token_id, owner_id):
            # Un autre écrivain assigne le code entre la lecture et l'écriture
            original_set_owner(db, token_id, winner.id)
            return original_set_owner(db, token_id, owner_id)

        with patch("app.services.lifecycle_service.tracking_store.set_owner_if_unowned", side_effect=concurrent_writer):
            with pytest.raises(AlreadyOwnedError):
                lifecycle_service.assign(db_session, token.id, loser.id)

        assert lifecycle_service.get_token(db_session, token.id).owner_id == winner.id

    def test_utilisateur_introuvable(self, db_session, admin):
        token = make_active_token(db_session, admin)
        with pytest.raises(PrincipalNotFoundError):
            lifecycle_service.assign(db_session, token.id, uuid.uuid4())

    def test_code_introuvable(self, db_session, user_factory):
        with pytest.raises(TokenNotFoundError):
            lifecycle_service.assign(db_session, uuid.uuid4(), user_factory().id)


# ----------------------------------------------------------------
# resolve_scan
# ----------------------------------------------------------------

class TestResolveScan:
    def test_scan_manuel_auto_assigne(self, db_session, admin, user_factory):
        scanner = user_factory()
        token = make_active_token(db_session, admin)

        result = lifecycle_service.resolve_scan(db_session, scanner.id, code=token.code)

        assert result.auto_assigned is True
        assert result.qr_code.owner_id == scanner.id

    def test_saisie_manuelle_normalisee(self, db_session, admin, user_factory):
        scanner = user_factory()
        token = make_active_token(db_session, admin)

        result = lifecycle_service.resolve_scan(db_session, scanner.id, code=f"  {token.code.lower()} ")
        assert result.qr_code.id == token.id

    def test_second_scanneur_ne_change_pas_le_proprietaire(self, db_session, admin, user_factory):
        first, second = user_factory(), user_factory()
        token = make_active_token(db_session, admin)

        lifecycle_service.resolve_scan(db_session, first.id, code=token.code)
        result = lifecycle_service.resolve_scan(db_session, second.id, code=token.code)

        assert result.auto_assigned is False
        assert result.qr_code.owner_id == first.id

    def test_scan_image(self, db_session, admin, user_factory):
        scanner = user_factory()
        token = make_active_token(db_session, admin)

        with patch("app.services.lifecycle_service.decode_token", return_value=token.code) as mock_decode:
            result = lifecycle_service.resolve_scan(db_session, scanner.id, image=b"\x89PNG...")

        mock_decode.assert_called_once_with(b"\x89PNG...")
        assert result.qr_code.owner_id == scanner.id

    def test_image_sans_qr(self, db_session, user_factory):
        with patch("app.services.lifecycle_service.decode_token", side_effect=DecodeError("Aucun code QR")):
            with pytest.raises(DecodeError):
                lifecycle_service.resolve_scan(db_session, user_factory().id, image=b"blank")

    def test_aucune_entree(self, db_session, user_factory):
        with pytest.raises(NoInputProvidedError):
            lifecycle_service.resolve_scan(db_session, user_factory().id, code="   ")

    def test_code_et_image_ensemble(self, db_session, user_factory):
        with pytest.raises(NoInputProvidedError, match="pas les deux"):
            lifecycle_service.resolve_scan(db_session, user_factory().id, code="ABC", image=b"img")

    def test_code_inconnu(self, db_session, user_factory):
        with pytest.raises(TokenNotFoundError):
            lifecycle_service.resolve_scan(db_session, user_factory().id, code="ZZZZZZZZZZZZZZZZ")

    def test_code_inactif(self, db_session, admin, user_factory):
        token = lifecycle_service.generate_batch(db_session, 1, admin.id).qr_codes[0]
        with pytest.raises(InactiveTokenError):
            lifecycle_service.resolve_scan(db_session, user_factory().id, code=token.code)

    def test_scanneur_supprime_entre_temps(self, db_session, admin, user_factory):
        """Jeton encore valide d'un utilisateur supprimé : erreur typée, code laissé libre."""
        scanner = user_factory()
        token = make_active_token(db_session, admin)
        user_service.delete_principal(db_session, scanner.id)

        with pytest.raises(PrincipalNotFoundError):
            lifecycle_service.resolve_scan(db_session, scanner.id, code=token.code)

        reloaded = lifecycle_service.get_token(db_session, token.id)
        assert reloaded.owner_id is None
        assert reloaded.status == "AVAILABLE"


# ----------------------------------------------------------------
# update_location / toggle_tracking / get_history
# ----------------------------------------------------------------

class TestLocation:
    def test_historique_en_ajout_seul(self, db_session, admin, user_factory):
        owner = user_factory()
        token = make_owned_token(db_session, admin, owner)
        points = [(48.8566, 2.3522), (50.8503, 4.3517), ("51.5074", "-0.1278"), (0, 0)]

        for lat, lng in points:
            result = lifecycle_service.update_location(db_session, token.id, owner.id, lat, lng)

        assert len(result.history) == len(points)
        timestamps = [e.recorded_at for e in result.history]
        assert timestamps == sorted(timestamps)
        last = result.history[-1]
        assert (result.location.latitude, result.location.longitude) == (last.latitude, last.longitude)
        assert result.last_tracked_at == last.recorded_at

    def test_non_proprietaire_refuse(self, db_session, admin, user_factory):
        owner, intruder = user_factory(), user_factory()
        token = make_owned_token(db_session, admin, owner)

        with pytest.raises(NotOwnedError):
            lifecycle_service.update_location(db_session, token.id, intruder.id, 1, 1)

        assert lifecycle_service.get_token(db_session, token.id).history == []

    def test_coordonnees_invalides_sans_ecriture(self, db_session, admin, user_factory):
        owner = user_factory()
        token = make_owned_token(db_session, admin, owner)

        with pytest.raises(InvalidCoordinateError):
            lifecycle_service.update_location(db_session, token.id, owner.id, 91, 0)

        reloaded = lifecycle_service.get_token(db_session, token.id)
        assert reloaded.history == []
        assert reloaded.location is None

    def test_code_introuvable(self, db_session, user_factory):
        with pytest.raises(TokenNotFoundError):
            lifecycle_service.update_location(db_session, uuid.uuid4(), user_factory().id, 1, 1)

    def test_toggle_tracking(self, db_session, admin, user_factory):
        owner = user_factory()
        token = make_owned_token(db_session, admin, owner)

        assert lifecycle_service.toggle_tracking(db_session, token.id, owner.id).is_tracking is True
        assert lifecycle_service.toggle_tracking(db_session, token.id, owner.id).is_tracking is False

    def test_toggle_tracking_non_proprietaire(self, db_session, admin, user_factory):
        token = make_active_token(db_session, admin)
        with pytest.raises(NotOwnedError):
            lifecycle_service.toggle_tracking(db_session, token.id, user_factory().id)

    def test_historique_lisible_par_admin_et_proprietaire(self, db_session, admin, user_factory):
        owner, other = user_factory(), user_factory()
        token = make_owned_token(db_session, admin, owner)
        lifecycle_service.update_location(db_session, token.id, owner.id, 10, 20)

        assert len(lifecycle_service.get_history(db_session, token.id, owner.id, "user")) == 1
        assert len(lifecycle_service.get_history(db_session, token.id, admin.id, "admin")) == 1
        with pytest.raises(NotOwnedError):
            lifecycle_service.get_history(db_session, token.id, other.id, "user")


# ----------------------------------------------------------------
# Scénario complet
# ----------------------------------------------------------------

def test_scenario_complet(db_session, user_factory):
    """5 codes générés par A → #3 activé → assigné à B → B envoie sa position."""
    issuer = user_factory(role="admin", name="A")
    owner = user_factory(name="B")

    batch = lifecycle_service.generate_batch(db_session, 5, issuer.id)
    third = batch.qr_codes[2]

    lifecycle_service.toggle_active(db_session, third.id)
    lifecycle_service.assign(db_session, third.id, owner.id)
    result = lifecycle_service.update_location(db_session, third.id, owner.id, 40.7128, -74.0060)

    assert len(result.history) == 1
    assert result.location.latitude == pytest.approx(40.7128)
    assert result.location.longitude == pytest.approx(-74.0060)
    assert result.is_tracking is False

    assert lifecycle_service.toggle_tracking(db_session, third.id, owner.id).is_tracking is True

    # Les 4 autres codes sont restés inactifs
    others = [t for t in lifecycle_service.list_tokens(db_session) if t.id != third.id]
    assert len(others) == 4
    assert all(t.status == "INACTIVE" for t in others)


# ----------------------------------------------------------------
# list_tokens : ordre et informations embarquées
# ----------------------------------------------------------------

class TestListTokens:
    def test_plus_recent_en_premier_dans_un_lot(self, db_session, admin):
        generated = lifecycle_service.generate_batch(db_session, 3, admin.id).qr_codes

        listed = lifecycle_service.list_tokens(db_session)

        assert [t.id for t in listed] == [t.id for t in reversed(generated)]
        assert generated[0].created_at < generated[1].created_at < generated[2].created_at

    def test_proprietaire_et_emetteur_embarques(self, db_session, user_factory):
        issuer = user_factory(role="admin", name="Alice Admin", email="alice@example.com")
        owner = user_factory(name="Bob", email="bob@example.com")
        make_owned_token(db_session, issuer, owner)

        token = lifecycle_service.list_tokens(db_session)[0]

        assert token.owner.id == owner.id
        assert (token.owner.name, token.owner.email) == ("Bob", "bob@example.com")
        assert token.issuer.email == "alice@example.com"

    def test_emetteur_supprime(self, db_session, user_factory):
        issuer = user_factory(role="admin")
        token = lifecycle_service.generate_batch(db_session, 1, issuer.id).qr_codes[0]
        user_service.delete_principal(db_session, issuer.id)

        reloaded = lifecycle_service.get_token(db_session, token.id)

        assert reloaded.issuer is None
        assert reloaded.issuer_id == issuer.id
        assert reloaded.owner is None
