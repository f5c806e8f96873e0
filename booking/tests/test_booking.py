import datetime

import pytest

from booking.exceptions import CapacityExceededError, FormatError, NotFoundError, SlotTakenError, ValidationError
from booking.services.booking import book, can_transition, set_status
from booking.services.counter import count_active_in_window, list_open_windows, remaining_capacity
from booking.tests.fakes import RecordingNotifier

NEXT_MONDAY = datetime.date(2026, 10, 26)


def _book(store, time, *, date=NEXT_MONDAY, **kw):
    params = dict(patient_id=100, doctor_id=1, department_id=7, date=date, time=time)
    params.update(kw)
    return book(store, **params)


@pytest.fixture
def limited_window(store):
    return store.create_window({
        'doctor_id': 1, 'day_of_week': 'Monday', 'start_time': 540, 'end_time': 600, 'max_occupants': 2,
    })


def test_book_creates_scheduled_booking(store, notifier):
    b = _book(store, '09:30', date='2026-10-26', reason='Annual check', notifier=notifier)
    assert b.status == 'scheduled'
    assert b.time == 570
    assert b.date == NEXT_MONDAY
    assert b.reason == 'Annual check'
    assert notifier.doctor_calls == [b]


def test_adjacent_minutes_are_distinct_slots(store):
    _book(store, '09:30')
    _book(store, '09:31')
    assert len(store.bookings) == 2


def test_same_time_is_taken(store, limited_window):
    _book(store, '09:30')
    with pytest.raises(SlotTakenError) as exc:
        _book(store, '09:30', patient_id=101, window_id=limited_window.id)
    msg = str(exc.value)
    assert 'Dr. Test Doctor' in msg
    assert 'Monday, October 26, 2026' in msg
    assert '09:30' in msg
    assert '(Available times: 09:00 - 10:00)' in msg
    assert len(store.bookings) == 1


def test_capacity_is_enforced_per_window(store, limited_window):
    _book(store, '09:00', window_id=limited_window.id)
    _book(store, '09:15', patient_id=101, window_id=limited_window.id)
    with pytest.raises(CapacityExceededError) as exc:
        _book(store, '09:45', patient_id=102, window_id=limited_window.id)
    assert 'Monday 09:00-10:00' in str(exc.value)
    assert 'Maximum 2 patient(s)' in str(exc.value)
    assert exc.value.status_code == 409


def test_cancelling_frees_capacity_for_another_time(store, limited_window):
    first = _book(store, '09:00', window_id=limited_window.id)
    _book(store, '09:15', patient_id=101, window_id=limited_window.id)
    with pytest.raises(CapacityExceededError):
        _book(store, '09:30', patient_id=102, window_id=limited_window.id)
    set_status(store, first.id, 'cancelled')
    fourth = _book(store, '09:45', patient_id=103, window_id=limited_window.id)
    assert fourth.status == 'scheduled'
    assert count_active_in_window(store, limited_window, NEXT_MONDAY) == 2


def test_capacity_counts_only_scheduled_bookings_inside_window(store, limited_window):
    first = _book(store, '09:00')
    _book(store, '10:30')  # outside the window
    _book(store, '09:10', date=NEXT_MONDAY + datetime.timedelta(days=7))  # other occurrence
    set_status(store, first.id, 'cancelled')
    assert count_active_in_window(store, limited_window, NEXT_MONDAY) == 0
    assert remaining_capacity(store, limited_window, NEXT_MONDAY) == 2


def test_booking_at_window_end_counts(store, limited_window):
    _book(store, '10:00')
    assert count_active_in_window(store, limited_window, NEXT_MONDAY) == 1


def test_cancel_then_rebook_same_slot(store):
    first = _book(store, '09:30')
    set_status(store, first.id, 'cancelled')
    second = _book(store, '09:30', patient_id=101)
    assert second.id != first.id
    assert store.bookings[first.id].status == 'cancelled'


def test_unlimited_window_never_fills(store):
    w = store.create_window({
        'doctor_id': 1, 'day_of_week': 'Monday', 'start_time': 540, 'end_time': 600, 'max_occupants': None,
    })
    for i, t in enumerate(['09:00', '09:10', '09:20', '09:30']):
        _book(store, t, patient_id=200 + i, window_id=w.id)
    assert remaining_capacity(store, w, NEXT_MONDAY) is None


@pytest.mark.parametrize('missing,message', [
    ('doctor_id', 'Please select a doctor'),
    ('department_id', 'Please select a department'),
    ('date', 'Please select an appointment date'),
    ('time', 'Please select an appointment time'),
])
def test_required_fields(store, missing, message):
    with pytest.raises(ValidationError, match=message):
        _book(store, '09:30', **{missing: None})


def test_required_fields_checked_before_format(store):
    with pytest.raises(ValidationError, match='Please select a patient'):
        _book(store, 'nonsense', patient_id=None)


def test_bad_time_and_date_formats(store):
    with pytest.raises(FormatError):
        _book(store, '9:30')
    with pytest.raises(FormatError):
        _book(store, '09:30', date='26.10.2026')


def test_unknown_window(store):
    with pytest.raises(NotFoundError):
        _book(store, '09:30', window_id=999)


def test_window_of_other_doctor(store):
    store.doctors[2] = 'Dr. Other'
    w = store.create_window({
        'doctor_id': 2, 'day_of_week': 'Monday', 'start_time': 540, 'end_time': 600, 'max_occupants': 1,
    })
    with pytest.raises(ValidationError):
        _book(store, '09:30', window_id=w.id)


def test_window_booking_must_fall_on_window_day(store):
    w = store.create_window({
        'doctor_id': 1, 'day_of_week': 'Monday', 'start_time': 540, 'end_time': 600, 'max_occupants': 1,
    })
    _book(store, '09:00', window_id=w.id)
    wednesday = NEXT_MONDAY + datetime.timedelta(days=2)
    with pytest.raises(ValidationError, match=r"schedule's day \(Monday\)"):
        _book(store, '09:00', patient_id=101, date=wednesday, window_id=w.id)
    with pytest.raises(CapacityExceededError):
        _book(store, '09:30', patient_id=101, window_id=w.id)
    assert len(store.bookings) == 1


@pytest.mark.parametrize('time', ['08:59', '10:01', '14:00'])
def test_window_booking_must_fall_within_window_hours(store, limited_window, time):
    with pytest.raises(ValidationError, match=r'schedule hours \(09:00 - 10:00\)'):
        _book(store, time, window_id=limited_window.id)
    assert store.bookings == {}


def test_window_booking_accepts_both_edges(store, limited_window):
    _book(store, '09:00', window_id=limited_window.id)
    _book(store, '10:00', patient_id=101, window_id=limited_window.id)
    assert len(store.bookings) == 2


def test_concurrent_bookings_for_same_slot_store_exactly_one(store):
    # Both requests pass the read-side check; the store's uniqueness decides.
    store.stale_reads = True
    _book(store, '09:30', patient_id=100)
    with pytest.raises(SlotTakenError):
        _book(store, '09:30', patient_id=101)
    assert len(store.bookings) == 1


def test_notification_failure_does_not_fail_booking(store, caplog):
    notifier = RecordingNotifier(fail_doctor=True)
    b = _book(store, '09:30', notifier=notifier)
    assert b.id in store.bookings
    assert 'Failed to notify doctor' in caplog.text


def test_new_patient_is_created_after_checks(store):
    _book(store, '09:30')
    new_patient = {'first_name': 'Lea', 'last_name': 'Ward', 'email': 'lea@example.com'}
    with pytest.raises(SlotTakenError):
        _book(store, '09:30', patient_id=None, new_patient=new_patient)
    assert store.patients == {}

    b = _book(store, '09:45', patient_id=None, new_patient=new_patient)
    assert store.patients[b.patient_id]['email'] == 'lea@example.com'


def test_new_patient_requires_name_and_email(store):
    with pytest.raises(ValidationError, match='First Name, Last Name, Email'):
        _book(store, '09:30', patient_id=None, new_patient={'first_name': 'Lea', 'last_name': 'Ward'})


def test_reason_is_sanitised(store):
    b = _book(store, '09:30', reason='  <b>Chest pain</b> ')
    assert b.reason == 'Chest pain'


def test_status_transitions(store):
    b = _book(store, '09:30')
    assert can_transition('scheduled', 'confirmed')
    assert not can_transition('completed', 'scheduled')
    set_status(store, b.id, 'confirmed', reason='called in')
    set_status(store, b.id, 'completed')
    with pytest.raises(ValidationError, match='Cannot change status from completed to cancelled'):
        set_status(store, b.id, 'cancelled')
    with pytest.raises(ValidationError, match='Invalid status'):
        set_status(store, b.id, 'lost')
    with pytest.raises(NotFoundError):
        set_status(store, 999, 'cancelled')
    assert [h[1:3] for h in store.status_history] == [('scheduled', 'confirmed'), ('confirmed', 'completed')]


def test_list_open_windows_skips_full(store, limited_window, today):
    other = store.create_window({
        'doctor_id': 1, 'day_of_week': 'Tuesday', 'start_time': 540, 'end_time': 600, 'max_occupants': None,
    })
    _book(store, '09:00', window_id=limited_window.id)
    entries = {e['window'].id: e for e in list_open_windows(store, today)}
    assert entries[limited_window.id]['remaining'] == 1
    assert entries[limited_window.id]['date'] == NEXT_MONDAY
    assert entries[other.id]['remaining'] is None

    _book(store, '09:30', patient_id=101, window_id=limited_window.id)
    assert limited_window.id not in {e['window'].id for e in list_open_windows(store, today)}
