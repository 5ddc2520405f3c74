import functools
import logging
import os

from flask import Flask, request, jsonify
from flask_cors import CORS

from config import Settings, configure_logging
from dealer import ChainExhausted, Dealer
from game_logic import BetRequest, InvalidBetParameters, settle, validate_bet
from models import (BetHistory, User, get_or_create_user, init_db, make_engine,
                    make_session_factory, next_game_index)
from provably_fair import (ChainIntegrityError, MalformedInput, check_digest,
                           load_chain, verify)

logger = logging.getLogger("hashdice.app")


def _json_body():
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return None
    return data


def create_app(settings: Settings = None, dealer: Dealer = None) -> Flask:
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    CORS(app)

    engine = make_engine(settings.database_url)
    init_db(engine)
    SessionLocal = make_session_factory(engine)

    if dealer is None:
        if not os.path.exists(settings.chain_file):
            raise FileNotFoundError(
                f"{settings.chain_file} not found; run 'python -m cli generate' first")
        dealer = Dealer()
        chain = load_chain(settings.chain_file)
        with SessionLocal() as db:
            start = next_game_index(db, chain[0])
        dealer.load(chain, game_index=start)
    if settings.public_anchor and check_digest(settings.public_anchor, "PUBLIC_ANCHOR") != dealer.anchor:
        # corrente diferente da publicada: incidente operacional, não continua
        raise ChainIntegrityError(
            f"loaded chain anchor {dealer.anchor} does not match published anchor {settings.public_anchor}")

    # Cria usuário padrão em primeiro run
    with SessionLocal() as db:
        get_or_create_user(db, settings.default_username, settings.default_balance)

    app.config['SETTINGS'] = settings
    app.extensions['dealer'] = dealer
    app.extensions['session_factory'] = SessionLocal

    @app.get('/api/state')
    def get_state():
        username = request.args.get('username', settings.default_username)
        snap = dealer.snapshot()
        with SessionLocal() as db:
            u = db.query(User).filter_by(username=username).first()
            if not u:
                return jsonify({'error': 'user not found'}), 404
            return jsonify({'username': u.username, 'balance': float(u.balance),
                            'serverSeedHash': snap.anchor, 'nonce': snap.game_index,
                            'remaining': snap.remaining})

    @app.get('/api/anchor')
    def get_anchor():
        snap = dealer.snapshot()
        return jsonify({'anchor': snap.anchor, 'nonce': snap.game_index,
                        'chainAnchor': dealer.anchor})

    @app.post('/api/bet')
    def bet():
        data = _json_body()
        if data is None:
            return jsonify({'error': 'invalid JSON body'}), 400
        username = data.get('username', settings.default_username)

        with SessionLocal() as db:
            u = db.query(User).filter_by(username=username).first()
            if not u:
                return jsonify({'error': 'user not found'}), 404
            try:
                bet_req = validate_bet(BetRequest.from_json(data), u.balance)
            except InvalidBetParameters as e:
                # nenhuma semente é gasta numa aposta rejeitada
                logger.info("rejected bet for %s: %s", username, e)
                return jsonify({'error': str(e)}), 400

            outcome = dealer.consume_next(bet_req.client_seed,
                                          settle=functools.partial(settle, bet_req))
            if isinstance(outcome, ChainExhausted):
                return jsonify({'error': outcome.message}), 503

            # incremento no banco: apostas simultâneas não sobrescrevem o saldo
            db.query(User).filter_by(id=u.id).update(
                {User.balance: User.balance + outcome.profit}, synchronize_session=False)
            db.add(BetHistory(user_id=u.id, chain_anchor=dealer.anchor,
                              nonce=outcome.sequence_number,
                              bet_amount=outcome.bet_amount, target=outcome.target,
                              condition=outcome.condition, roll=outcome.roll,
                              profit=outcome.profit, is_win=outcome.is_win,
                              client_seed=outcome.client_seed,
                              server_seed=outcome.server_seed))
            db.commit()
            db.refresh(u)

            return jsonify({
                'roll': float(outcome.roll),
                'isWin': outcome.is_win,
                'profit': float(outcome.profit),
                'multiplier': float(outcome.multiplier),
                'newBalance': float(u.balance),
                'betAmount': float(outcome.bet_amount),
                'serverSeedRevealed': outcome.server_seed,
                'clientSeed': outcome.client_seed,
                'nonce': outcome.sequence_number,
                'previousServerSeedHash': outcome.previous_anchor,
                'nextServerSeedHash': outcome.next_anchor,
            })

    @app.get('/api/history')
    def history():
        username = request.args.get('username', settings.default_username)
        try:
            limit = int(request.args.get('limit', settings.history_limit))
        except ValueError:
            return jsonify({'error': 'limit must be an integer'}), 400
        limit = max(1, min(limit, 100))
        with SessionLocal() as db:
            u = db.query(User).filter_by(username=username).first()
            if not u:
                return jsonify({'error': 'user not found'}), 404
            rows = (db.query(BetHistory).filter_by(user_id=u.id)
                    .order_by(BetHistory.id.desc()).limit(limit).all())
            return jsonify({'bets': [r.to_dict() for r in rows]})

    @app.post('/api/verify')
    def verify_bet():
        data = _json_body()
        if data is None:
            return jsonify({'error': 'invalid JSON body'}), 400
        try:
            result = verify(data.get('previousServerSeedHash'), data.get('serverSeed'),
                            data.get('clientSeed'), data.get('nonce'), data.get('roll'))
        except MalformedInput as e:
            return jsonify({'error': str(e)}), 400
        return jsonify({
            'mathValid': result.math_valid,
            'chainValid': result.chain_valid,
            'fair': result.fair,
            'calculatedRoll': f"{result.calculated_roll:.2f}",
            'chainHash': result.chain_hash,
        })

    return app


if __name__ == '__main__':
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    create_app(settings).run(port=int(os.getenv('PORT', 3000)))
