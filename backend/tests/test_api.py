def _dealer(created):
    return {'X-Dealer-Token': created['dealer_token']}


def _ids(created):
    return {p['name']: p['id'] for p in created['game']['players']}


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_create_game(client):
    res = client.post('/api/games/create', json={'buy_in_amount': 20, 'players': ['Alice', '', 'Alice']})
    assert res.status_code == 201
    data = res.get_json()
    assert len(data['game_code']) == 6
    assert data['dealer_token']
    game = data['game']
    assert game['phase'] == 'playing'
    assert game['pot'] == 60
    # Blank names get a default and duplicates are disambiguated
    assert [p['name'] for p in game['players']] == ['Alice', 'Player 2', 'Alice (2)']
    assert all(p['buy_ins'] == 1 for p in game['players'])


def test_create_game_validation(client):
    res = client.post('/api/games/create', json={'buy_in_amount': 20, 'players': ['Solo']})
    assert res.status_code == 400
    res = client.post('/api/games/create', json={'buy_in_amount': 20, 'players': [f'P{i}' for i in range(11)]})
    assert res.status_code == 400
    res = client.post('/api/games/create', json={'buy_in_amount': 0, 'players': ['A', 'B']})
    assert res.status_code == 400
    res = client.post('/api/games/create', json={'buy_in_amount': 'lots', 'players': ['A', 'B']})
    assert res.status_code == 400
    assert 'error' in res.get_json()


def test_state_is_case_insensitive_and_404s(client, new_game):
    created = new_game()
    res = client.get(f"/api/games/{created['game_code'].lower()}/state")
    assert res.status_code == 200
    assert res.get_json()['game_code'] == created['game_code']
    assert client.get('/api/games/ZZZZZZ/state').status_code == 404


def test_writes_require_dealer_token(client, new_game):
    created = new_game()
    code = created['game_code']
    bob = _ids(created)['Bob']
    res = client.post(f'/api/games/{code}/players/{bob}/buy-ins', json={'buy_ins': 2})
    assert res.status_code == 403
    res = client.post(f'/api/games/{code}/players/{bob}/buy-ins', json={'buy_ins': 2},
                      headers={'X-Dealer-Token': 'not-the-token'})
    assert res.status_code == 403
    # Token may also travel in the body
    res = client.post(f'/api/games/{code}/players/{bob}/buy-ins',
                      json={'buy_ins': 2, 'dealer_token': created['dealer_token']})
    assert res.status_code == 200
    assert res.get_json()['invested'] == 40


def test_buy_ins_and_players_during_play(client, new_game):
    created = new_game()
    code = created['game_code']
    alice = _ids(created)['Alice']

    res = client.post(f'/api/games/{code}/players/{alice}/buy-ins', json={'buy_ins': 3}, headers=_dealer(created))
    assert res.get_json()['buy_ins'] == 3
    res = client.post(f'/api/games/{code}/players/{alice}/buy-ins', json={'buy_ins': 0}, headers=_dealer(created))
    assert res.status_code == 409
    res = client.post(f'/api/games/{code}/players/{alice}/buy-ins', json={'buy_ins': 1.5}, headers=_dealer(created))
    assert res.status_code == 400

    res = client.post(f'/api/games/{code}/players', json={'name': 'Eve'}, headers=_dealer(created))
    assert res.status_code == 201
    assert res.get_json()['position'] == 4

    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['pot'] == 20 * (3 + 1 + 1 + 1 + 1)
    assert [p['name'] for p in state['players']][-1] == 'Eve'


def test_full_round_settles(client, new_game):
    created = new_game(players=('A', 'B', 'C', 'D'))
    code = created['game_code']
    ids = _ids(created)

    res = client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))
    assert res.status_code == 200
    assert res.get_json()['phase'] == 'settlement'

    res = client.put(f"/api/games/{code}/players/{ids['A']}/wins", json={'amount': 0}, headers=_dealer(created))
    assert res.status_code == 200

    wins = {str(ids['B']): 50, str(ids['C']): 10, str(ids['D']): 20}
    res = client.post(f'/api/games/{code}/finalize', json={'wins': wins}, headers=_dealer(created))
    assert res.status_code == 200
    data = res.get_json()
    assert data['phase'] == 'complete'
    assert data['settlement']['payments'] == [
        {'from': 'A', 'to': 'B', 'amount': 20},
        {'from': 'C', 'to': 'B', 'amount': 10},
    ]
    nets = {r['name']: r['net'] for r in data['settlement']['results']}
    assert nets == {'A': -20, 'B': 30, 'C': -10, 'D': 0}

    # Derived views are recomputed identically on every read
    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['settlement'] == data['settlement']

    res = client.get(f'/api/games/{code}/settlement')
    assert res.status_code == 200
    summary = res.get_json()['summary']
    assert 'A -> B: $20.00' in summary
    assert 'Total pot: $80.00' in summary


def test_pool_mismatch_blocks_finalize(client, new_game):
    created = new_game(players=('A', 'B'))
    code = created['game_code']
    ids = _ids(created)
    client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))

    res = client.post(f'/api/games/{code}/finalize', json={'wins': {str(ids['A']): 25, str(ids['B']): 10}},
                      headers=_dealer(created))
    assert res.status_code == 400
    assert res.get_json()['error'] == "Total ($35.00) doesn't match pot ($40.00)"

    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['phase'] == 'settlement'
    assert 'settlement' not in state
    # Entered values are kept so the dealer can correct them
    assert state['entered_total'] == 35
    assert state['pool_difference'] == -5
    assert client.get(f'/api/games/{code}/settlement').status_code == 409


def test_unentered_amounts_default_to_zero(client, new_game):
    created = new_game(players=('A', 'B'))
    code = created['game_code']
    ids = _ids(created)
    client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))
    res = client.post(f'/api/games/{code}/finalize', json={'wins': {str(ids['B']): 40}}, headers=_dealer(created))
    assert res.status_code == 200
    players = {p['name']: p for p in res.get_json()['players']}
    assert players['A']['wins'] == 0
    assert res.get_json()['settlement']['payments'] == [{'from': 'A', 'to': 'B', 'amount': 20}]


def test_early_cash_out_is_locked(client, new_game):
    created = new_game(players=('A', 'B', 'C'))
    code = created['game_code']
    ids = _ids(created)

    res = client.post(f"/api/games/{code}/players/{ids['C']}/cash-out", json={'amount': 5}, headers=_dealer(created))
    assert res.status_code == 200
    assert res.get_json()['cashed_out'] is True

    # A second cash-out or a buy-in change is refused
    res = client.post(f"/api/games/{code}/players/{ids['C']}/cash-out", json={'amount': 9}, headers=_dealer(created))
    assert res.status_code == 409
    res = client.post(f"/api/games/{code}/players/{ids['C']}/buy-ins", json={'buy_ins': 2}, headers=_dealer(created))
    assert res.status_code == 409

    client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))
    res = client.put(f"/api/games/{code}/players/{ids['C']}/wins", json={'amount': 40}, headers=_dealer(created))
    assert res.status_code == 409

    # Finalize refuses to overwrite the locked amount
    wins = {str(ids['A']): 0, str(ids['B']): 55, str(ids['C']): 40}
    res = client.post(f'/api/games/{code}/finalize', json={'wins': wins}, headers=_dealer(created))
    assert res.status_code == 409
    del wins[str(ids['C'])]
    res = client.post(f'/api/games/{code}/finalize', json={'wins': wins}, headers=_dealer(created))
    assert res.status_code == 200
    payments = res.get_json()['settlement']['payments']
    assert payments == [
        {'from': 'A', 'to': 'B', 'amount': 20},
        {'from': 'C', 'to': 'B', 'amount': 15},
    ]


def test_negative_amounts_rejected(client, new_game):
    created = new_game(players=('A', 'B'))
    code = created['game_code']
    ids = _ids(created)
    res = client.post(f"/api/games/{code}/players/{ids['A']}/cash-out", json={'amount': -5}, headers=_dealer(created))
    assert res.status_code == 400
    client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))
    res = client.put(f"/api/games/{code}/players/{ids['A']}/wins", json={'amount': 'abc'}, headers=_dealer(created))
    assert res.status_code == 400


def test_buy_ins_have_an_upper_bound(client, new_game):
    created = new_game(players=('A', 'B'))
    code = created['game_code']
    a = _ids(created)['A']
    res = client.post(f'/api/games/{code}/players/{a}/buy-ins', json={'buy_ins': 10**30}, headers=_dealer(created))
    assert res.status_code == 400
    res = client.post(f'/api/games/{code}/players/{a}/buy-ins', json={'buy_ins': 101}, headers=_dealer(created))
    assert res.status_code == 400
    res = client.post(f'/api/games/{code}/players/{a}/buy-ins', json={'buy_ins': 100}, headers=_dealer(created))
    assert res.status_code == 200
    assert client.get(f'/api/games/{code}/state').get_json()['pot'] == 20 * 101


def test_oversized_amounts_rejected_and_game_stays_readable(client, new_game):
    res = client.post('/api/games/create', json={'buy_in_amount': 1e308, 'players': ['A', 'B']})
    assert res.status_code == 400

    created = new_game(players=('A', 'B'), buy_in_amount=1000000)
    code = created['game_code']
    ids = _ids(created)
    res = client.post(f"/api/games/{code}/players/{ids['A']}/buy-ins", json={'buy_ins': 100}, headers=_dealer(created))
    assert res.status_code == 200
    res = client.post(f"/api/games/{code}/players/{ids['B']}/cash-out", json={'amount': 1e308},
                      headers=_dealer(created))
    assert res.status_code == 400

    state = client.get(f'/api/games/{code}/state')
    assert state.status_code == 200
    assert state.get_json()['pot'] == 101 * 1000000


def test_long_names_are_clipped_to_column_width(client, new_game):
    long_name = 'N' * 100
    created = new_game(players=(long_name, long_name))
    names = [p['name'] for p in created['game']['players']]
    assert names[0] == 'N' * 64
    assert names[1] == 'N' * 60 + ' (2)'

    res = client.post(f"/api/games/{created['game_code']}/players", json={'name': long_name},
                      headers=_dealer(created))
    assert res.status_code == 201
    assert res.get_json()['name'] == 'N' * 60 + ' (3)'


def test_finalize_rejects_unknown_players(client, new_game):
    created = new_game(players=('A', 'B'))
    code = created['game_code']
    ids = _ids(created)
    client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))

    wins = {str(ids['A']): 40, str(ids['B']): 0, '999999': 10}
    res = client.post(f'/api/games/{code}/finalize', json={'wins': wins}, headers=_dealer(created))
    assert res.status_code == 409
    state = client.get(f'/api/games/{code}/state').get_json()
    assert state['phase'] == 'settlement'
    # Nothing from the rejected request was applied
    assert state['entered_total'] == 0


def test_debounce_forgets_expired_actions(flask_app, client, new_game):
    from pokersplit.api import games as games_api
    flask_app.config['CONTROLLER_DEBOUNCE_MS'] = 1000
    games_api._last_controller_action.clear()
    games_api._last_controller_action['buy-ins:OLDGAME:1'] = 0.0

    created = new_game(players=('A', 'B'))
    code = created['game_code']
    a = _ids(created)['A']
    res = client.post(f'/api/games/{code}/players/{a}/buy-ins', json={'buy_ins': 2}, headers=_dealer(created))
    assert res.status_code == 200
    res = client.post(f'/api/games/{code}/players/{a}/buy-ins', json={'buy_ins': 3}, headers=_dealer(created))
    assert res.status_code == 202
    assert list(games_api._last_controller_action) == [f'buy-ins:{code}:{a}']
    games_api._last_controller_action.clear()


def test_phase_transitions(client, new_game):
    created = new_game(players=('A', 'B'))
    code = created['game_code']
    ids = _ids(created)

    res = client.post(f'/api/games/{code}/phase', json={'phase': 'complete'}, headers=_dealer(created))
    assert res.status_code == 409
    res = client.post(f'/api/games/{code}/finalize', json={}, headers=_dealer(created))
    assert res.status_code == 409

    client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))
    # No buy-in changes once settlement starts
    res = client.post(f"/api/games/{code}/players/{ids['A']}/buy-ins", json={'buy_ins': 2}, headers=_dealer(created))
    assert res.status_code == 409
    # Back to the game
    res = client.post(f'/api/games/{code}/phase', json={'phase': 'playing'}, headers=_dealer(created))
    assert res.get_json()['phase'] == 'playing'


def test_stats_and_feedback(client, new_game):
    new_game()
    created = new_game(players=('A', 'B'))
    client.post(f"/api/games/{created['game_code']}/phase", json={'phase': 'settlement'}, headers=_dealer(created))
    assert client.get('/api/stats').get_json() == {'active': 1, 'completed': 1, 'total': 2}

    assert client.post('/api/feedback', json={}).status_code == 400
    assert client.post('/api/feedback', json={'rating': 9}).status_code == 400
    res = client.post('/api/feedback', json={'rating': 5, 'message': 'Great', 'email': 'a@b.c'})
    assert res.status_code == 201
    assert res.get_json()['rating'] == 5
    # Oversized optional fields are clipped to their column widths
    res = client.post('/api/feedback', json={'message': 'Hi', 'email': 'e' * 400, 'page_url': 'u' * 2000})
    assert res.status_code == 201
    assert len(res.get_json()['email']) == 255


def test_admin_endpoints(client, new_game):
    created = new_game()
    code = created['game_code']
    assert client.get('/api/admin/games').status_code == 403

    headers = {'X-Admin-Token': 'admin-secret'}
    games = client.get('/api/admin/games', headers=headers).get_json()
    assert [g['game_code'] for g in games] == [code]
    assert 'players' not in games[0]

    players = client.get(f'/api/admin/games/{code}/players', headers=headers).get_json()
    assert [p['name'] for p in players] == ['Alice', 'Bob', 'Cara', 'Dan']

    res = client.delete(f'/api/admin/games/{code}', headers=headers)
    assert res.status_code == 200
    assert client.get(f'/api/games/{code}/state').status_code == 404


def test_settle_command_prints_summary(flask_app, client, new_game):
    created = new_game(players=('A', 'B'))
    code = created['game_code']
    ids = _ids(created)
    runner = flask_app.test_cli_runner()

    result = runner.invoke(args=['settle', code])
    assert result.exit_code != 0
    assert 'not complete' in result.output

    client.post(f'/api/games/{code}/phase', json={'phase': 'settlement'}, headers=_dealer(created))
    client.post(f'/api/games/{code}/finalize', json={'wins': {str(ids['A']): 40, str(ids['B']): 0}},
                headers=_dealer(created))
    result = runner.invoke(args=['settle', code.lower()])
    assert result.exit_code == 0
    assert 'B -> A: $20.00' in result.output
    assert 'A: +$20.00' in result.output


def test_db_reset_seeds_demo_game(flask_app):
    from pokersplit.models import Game
    result = flask_app.test_cli_runner().invoke(args=['db-reset'])
    assert result.exit_code == 0
    assert 'Demo game' in result.output
    game = Game.query.one()
    assert [p.name for p in game.players] == ['Alice', 'Bob', 'Cara', 'Dan']
    assert game.pot == 80
