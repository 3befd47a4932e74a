"""Tests for the signal subscriber."""

from unittest.mock import Mock

import dbus
import pytest
from conftest import FIREFOX, MPV, SPOTIFY
from lizzy.dbus_utils import MPRIS2_PLAYER_INTERFACE
from lizzy.exceptions import SignalPayloadError
from lizzy.matcher import PlayerMatcher
from lizzy.metadata import PlaybackStatus, TrackMetadata
from lizzy.subscriber import SignalSubscriber, decode_properties


def mpris_metadata(title=None, artist=None):
    fields = {}
    if title is not None:
        fields['xesam:title'] = dbus.String(title, variant_level=1)
    if artist is not None:
        fields['xesam:artist'] = dbus.Array([dbus.String(a) for a in artist], signature='s',
                                            variant_level=1)
    fields['mpris:trackid'] = dbus.ObjectPath('/org/mpris/MediaPlayer2/Track/1', variant_level=1)
    return dbus.Dictionary(fields, signature='sv', variant_level=1)


def changed(status=None, metadata=None, **extra):
    props = {}
    if status is not None:
        props['PlaybackStatus'] = dbus.String(status, variant_level=1)
    if metadata is not None:
        props['Metadata'] = metadata
    props.update(extra)
    return dbus.Dictionary(props, signature='sv')


class TestDecodeProperties:
    """Test decode_properties."""

    def test_status_only(self):
        patch = decode_properties(changed(status='Paused'))
        assert patch.status is PlaybackStatus.PAUSED
        assert patch.metadata is None

    def test_metadata_only(self):
        patch = decode_properties(changed(metadata=mpris_metadata('Y', ['X', 'Z'])))
        assert patch.status is None
        assert patch.metadata == TrackMetadata(artist=('X', 'Z'), title='Y')

    def test_partial_metadata(self):
        patch = decode_properties(changed(metadata=mpris_metadata(title='Y')))
        assert patch.metadata == TrackMetadata(title='Y')

    def test_unknown_status_is_stopped(self):
        assert decode_properties(changed(status='Buffering')).status is PlaybackStatus.STOPPED

    def test_unrelated_properties_give_empty_patch(self):
        patch = decode_properties(changed(Volume=dbus.Double(0.5, variant_level=1)))
        assert patch.is_empty

    @pytest.mark.parametrize('payload', [
        dbus.String('garbage'),
        changed(PlaybackStatus=dbus.Int32(3, variant_level=1)),
        changed(Metadata=dbus.String('not a dict', variant_level=1)),
        changed(metadata=dbus.Dictionary({'xesam:title': dbus.Int32(1, variant_level=1)},
                                         signature='sv', variant_level=1)),
    ])
    def test_malformed(self, payload):
        with pytest.raises(SignalPayloadError):
            decode_properties(payload)


class TestSignalSubscriber:
    """Test SignalSubscriber class."""

    @pytest.fixture
    def subscriber(self, mock_connection):
        subscriber = SignalSubscriber(mock_connection, PlayerMatcher('spotify'), timeout=3.0)
        subscriber.on_player_updated = Mock()
        subscriber.on_player_vanished = Mock()
        return subscriber

    def fetch_reply(self, mock_connection, properties):
        """Deliver a GetAll reply for the last fetch."""
        mock_connection.call_async.call_args.kwargs['on_reply'](properties)

    def test_start_subscribes_and_discovers(self, subscriber, mock_connection):
        mock_connection.list_names.return_value = [
            'org.freedesktop.Notifications', SPOTIFY, MPV, ':1.5',
        ]
        mock_connection.get_name_owner.return_value = ':1.7'
        subscriber.start()

        signals = [c.kwargs['signal_name'] for c in mock_connection.add_signal_receiver.call_args_list]
        assert signals == ['PropertiesChanged', 'NameOwnerChanged']
        mock_connection.get_name_owner.assert_called_once_with(SPOTIFY)
        assert subscriber.tracked_owner(SPOTIFY) == ':1.7'

        call = mock_connection.call_async.call_args
        assert call.args == (SPOTIFY, 'GetAll')
        assert call.kwargs['args'] == (MPRIS2_PLAYER_INTERFACE,)
        assert call.kwargs['timeout'] == 3.0

        self.fetch_reply(mock_connection, changed('Playing', mpris_metadata('Y', ['X'])))
        player_id, patch = subscriber.on_player_updated.call_args.args
        assert player_id == SPOTIFY
        assert patch.status is PlaybackStatus.PLAYING
        assert patch.metadata.title == 'Y'

    def test_properties_changed_from_tracked_player(self, subscriber):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        subscriber._on_properties_changed(MPRIS2_PLAYER_INTERFACE, changed('Paused'), [], sender=':1.7')
        player_id, patch = subscriber.on_player_updated.call_args.args
        assert player_id == SPOTIFY
        assert patch.status is PlaybackStatus.PAUSED
        assert patch.metadata is None

    def test_untracked_sender_ignored(self, subscriber):
        subscriber._on_properties_changed(MPRIS2_PLAYER_INTERFACE, changed('Playing'), [], sender=':1.99')
        subscriber.on_player_updated.assert_not_called()

    def test_other_interface_ignored(self, subscriber):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        subscriber._on_properties_changed('org.mpris.MediaPlayer2', changed('Playing'), [], sender=':1.7')
        subscriber.on_player_updated.assert_not_called()

    def test_unmatched_player_never_tracked(self, subscriber, mock_connection):
        subscriber._on_name_owner_changed(FIREFOX, '', ':1.8')
        mock_connection.call_async.assert_not_called()
        subscriber._on_properties_changed(MPRIS2_PLAYER_INTERFACE, changed('Playing'), [], sender=':1.8')
        subscriber.on_player_updated.assert_not_called()

    def test_malformed_payload_dropped(self, subscriber, caplog):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        subscriber._on_properties_changed(
            MPRIS2_PLAYER_INTERFACE, changed(PlaybackStatus=dbus.Int32(1, variant_level=1)), [],
            sender=':1.7')
        subscriber.on_player_updated.assert_not_called()
        assert 'Dropping malformed update from spotify' in caplog.text

        # The subscription keeps working afterwards
        subscriber._on_properties_changed(MPRIS2_PLAYER_INTERFACE, changed('Playing'), [], sender=':1.7')
        subscriber.on_player_updated.assert_called_once()

    def test_invalidated_properties_refetched(self, subscriber, mock_connection):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        mock_connection.call_async.reset_mock()
        subscriber._on_properties_changed(
            MPRIS2_PLAYER_INTERFACE, dbus.Dictionary({}, signature='sv'),
            dbus.Array(['Metadata'], signature='s'), sender=':1.7')
        subscriber.on_player_updated.assert_not_called()
        assert mock_connection.call_async.call_args.args == (SPOTIFY, 'GetAll')

    def test_appearance_fetches_state(self, subscriber, mock_connection):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        assert mock_connection.call_async.call_args.args == (SPOTIFY, 'GetAll')
        self.fetch_reply(mock_connection, changed('Playing'))
        assert subscriber.on_player_updated.call_args.args[0] == SPOTIFY

    def test_vanish(self, subscriber):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        subscriber._on_name_owner_changed(SPOTIFY, ':1.7', '')
        subscriber.on_player_vanished.assert_called_once_with(SPOTIFY)
        assert subscriber.tracked_owner(SPOTIFY) is None

        # Late signals from the old connection are ignored
        subscriber._on_properties_changed(MPRIS2_PLAYER_INTERFACE, changed('Playing'), [], sender=':1.7')
        subscriber.on_player_updated.assert_not_called()

    def test_fetch_reply_after_vanish_dropped(self, subscriber, mock_connection):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        on_reply = mock_connection.call_async.call_args.kwargs['on_reply']
        subscriber._on_name_owner_changed(SPOTIFY, ':1.7', '')
        on_reply(changed('Playing'))
        subscriber.on_player_updated.assert_not_called()

    def test_owner_handover_keeps_player(self, subscriber):
        subscriber._on_name_owner_changed(SPOTIFY, '', ':1.7')
        subscriber._on_name_owner_changed(SPOTIFY, ':1.7', ':1.9')
        subscriber.on_player_vanished.assert_not_called()
        assert subscriber.tracked_owner(SPOTIFY) == ':1.9'

    def test_non_mpris_names_ignored(self, mock_connection):
        subscriber = SignalSubscriber(mock_connection, PlayerMatcher(''))
        subscriber.on_player_vanished = Mock()
        subscriber._on_name_owner_changed('org.freedesktop.Notifications', ':1.3', '')
        subscriber.on_player_vanished.assert_not_called()
        mock_connection.call_async.assert_not_called()

    def test_connection_owning_two_players(self, mock_connection):
        vlc = 'org.mpris.MediaPlayer2.vlc'
        instance = 'org.mpris.MediaPlayer2.vlc.instance42'
        subscriber = SignalSubscriber(mock_connection, PlayerMatcher('vlc*'))
        subscriber.on_player_updated = Mock()
        subscriber.on_player_vanished = Mock()
        subscriber._on_name_owner_changed(vlc, '', ':1.7')
        subscriber._on_name_owner_changed(instance, '', ':1.7')
        assert subscriber.tracked_owner(vlc) == ':1.7'
        assert subscriber.tracked_owner(instance) == ':1.7'

        subscriber._on_properties_changed(MPRIS2_PLAYER_INTERFACE, changed('Paused'), [], sender=':1.7')
        updated = [c.args[0] for c in subscriber.on_player_updated.call_args_list]
        assert updated == [vlc, instance]

    def test_releasing_one_name_keeps_the_other(self, mock_connection):
        vlc = 'org.mpris.MediaPlayer2.vlc'
        instance = 'org.mpris.MediaPlayer2.vlc.instance42'
        subscriber = SignalSubscriber(mock_connection, PlayerMatcher('vlc*'))
        subscriber.on_player_updated = Mock()
        subscriber.on_player_vanished = Mock()
        subscriber._on_name_owner_changed(vlc, '', ':1.7')
        subscriber._on_name_owner_changed(instance, '', ':1.7')
        subscriber._on_name_owner_changed(instance, ':1.7', '')

        subscriber.on_player_vanished.assert_called_once_with(instance)
        assert subscriber.tracked_owner(vlc) == ':1.7'
        assert subscriber.tracked_owner(instance) is None

        subscriber._on_properties_changed(MPRIS2_PLAYER_INTERFACE, changed('Playing'), [], sender=':1.7')
        player_id, patch = subscriber.on_player_updated.call_args.args
        assert player_id == vlc
        assert patch.status is PlaybackStatus.PLAYING
        subscriber.on_player_updated.assert_called_once()

        subscriber._on_name_owner_changed(vlc, ':1.7', '')
        assert subscriber.tracked_owner(vlc) is None
        assert subscriber._owners == {}
