import pytest

from cache import OwnershipCache
from conftest import FakeImageClient, make_attraction, make_note, make_user
from database import SessionLocal
from errors import NotFoundOrForbiddenError
from models import Attraction
from repositories import AttractionStore, NoteStore
from schemas import AttractionCreate
from services import AttractionService


def _service(session, images=None, ownership=None):
    return AttractionService(
        NoteStore(session),
        AttractionStore(session),
        ownership if ownership is not None else OwnershipCache(300),
        images or FakeImageClient(),
    )


def _attraction(name='Wawel Castle', **extra) -> AttractionCreate:
    return AttractionCreate(name=name, description=f'{name} on the hill.',
                            latitude=50.054, longitude=19.935, **extra)


@pytest.mark.asyncio
async def test_owner_passes_ownership_check_and_decision_is_cached() -> None:
    user = make_user()
    note = make_note(user)
    ownership = OwnershipCache(300)

    with SessionLocal() as session:
        assert await _service(session, ownership=ownership).verify_ownership(note.id, user.id) is True

    assert ownership.get_access(user.id, note.id) is True


@pytest.mark.asyncio
async def test_other_user_and_missing_note_are_indistinguishable() -> None:
    owner = make_user('owner@example.com')
    other = make_user('other@example.com')
    note = make_note(owner)

    with SessionLocal() as session:
        service = _service(session)
        assert await service.verify_ownership(note.id, other.id) is False
        assert await service.verify_ownership('no-such-note', owner.id) is False

        with pytest.raises(NotFoundOrForbiddenError) as foreign:
            await service.add_attractions(note.id, other.id, [_attraction()])
        with pytest.raises(NotFoundOrForbiddenError) as missing:
            await service.add_attractions('no-such-note', owner.id, [_attraction()])

    assert foreign.value.status_code == missing.value.status_code == 404
    assert foreign.value.message == missing.value.message


@pytest.mark.asyncio
async def test_cached_decision_is_used_without_querying() -> None:
    class ExplodingNotes:
        def is_owned_by(self, note_id, user_id):
            raise AssertionError('store should not be queried')

    ownership = OwnershipCache(300)
    ownership.put_access('u1', 'n1', True)
    service = AttractionService(ExplodingNotes(), None, ownership, FakeImageClient())

    assert await service.verify_ownership('n1', 'u1') is True


@pytest.mark.asyncio
async def test_add_attractions_persists_and_fills_missing_images() -> None:
    user = make_user()
    note = make_note(user)
    images = FakeImageClient(missing={'Nowhere Lane'})
    given = {
        'image':                  'https://images.example.com/cloth-hall.jpg',
        'image_photographer':     'Ewa',
        'image_photographer_url': 'https://example.com/@ewa',
        'image_source':           'https://example.com/photo/1',
    }

    with SessionLocal() as session:
        created = await _service(session, images=images).add_attractions(note.id, user.id, [
            _attraction('Wawel Castle'),
            _attraction('Cloth Hall', **given),
            _attraction('Nowhere Lane'),
        ])

    assert [a['name'] for a in created] == ['Wawel Castle', 'Cloth Hall', 'Nowhere Lane']
    assert all(a['travel_note_id'] == note.id for a in created)
    assert created[0]['image']['photographer'] == 'Jan Kowalski'
    assert created[1]['image']['url'] == given['image']
    assert created[2]['image'] is None
    assert sorted(images.queries) == ['Nowhere Lane', 'Wawel Castle']

    with SessionLocal() as session:
        assert session.query(Attraction).filter_by(travel_note_id=note.id).count() == 3


@pytest.mark.asyncio
async def test_remove_attraction_deletes_only_that_row() -> None:
    user = make_user()
    note = make_note(user)
    keep = make_attraction(note, 'Wawel Castle')
    drop = make_attraction(note, 'Cloth Hall')

    with SessionLocal() as session:
        await _service(session).remove_attraction(note.id, user.id, drop.id)

    with SessionLocal() as session:
        remaining = [a.id for a in session.query(Attraction).all()]
    assert remaining == [keep.id]


@pytest.mark.asyncio
async def test_remove_attraction_of_another_note_is_a_noop() -> None:
    user = make_user()
    note = make_note(user)
    other_note = make_note(user, name='Gdańsk')
    foreign = make_attraction(other_note, 'Long Market')

    with SessionLocal() as session:
        await _service(session).remove_attraction(note.id, user.id, foreign.id)

    with SessionLocal() as session:
        assert session.get(Attraction, foreign.id) is not None


@pytest.mark.asyncio
async def test_remove_attraction_invalidates_cached_ownership() -> None:
    user = make_user()
    note = make_note(user)
    attraction = make_attraction(note, 'Wawel Castle')
    ownership = OwnershipCache(300)

    with SessionLocal() as session:
        await _service(session, ownership=ownership).remove_attraction(note.id, user.id, attraction.id)

    assert ownership.get_access(user.id, note.id) is None


@pytest.mark.asyncio
async def test_remove_by_non_owner_is_refused() -> None:
    owner = make_user('owner@example.com')
    other = make_user('other@example.com')
    note = make_note(owner)
    attraction = make_attraction(note, 'Wawel Castle')

    with SessionLocal() as session:
        with pytest.raises(NotFoundOrForbiddenError):
            await _service(session).remove_attraction(note.id, other.id, attraction.id)

    with SessionLocal() as session:
        assert session.get(Attraction, attraction.id) is not None
